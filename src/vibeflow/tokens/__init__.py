"""Token estimation, usage totals and model pricing."""
