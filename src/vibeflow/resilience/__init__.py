"""Retry, cancellation and error classification."""
