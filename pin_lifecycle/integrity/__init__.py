"""Data integrity: validation, legacy-schema migration and healing."""
