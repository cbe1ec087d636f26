"""Enums and fixed vocabularies used across the pin lifecycle core."""
