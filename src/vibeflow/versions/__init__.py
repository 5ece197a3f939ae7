"""Per-section artifact version history."""
