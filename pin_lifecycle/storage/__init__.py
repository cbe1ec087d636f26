"""Persistence for the pin collection: JSON codec and key-value stores."""
