"""Persistence for artifact version history."""
