"""API adapter."""
