"""Generation orchestration services."""
