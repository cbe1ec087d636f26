"""Shared helpers: logging setup and time arithmetic."""
