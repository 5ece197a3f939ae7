"""Long-running background task polling."""
