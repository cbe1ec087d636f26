"""
Tiering: Recent / Trending / Classics membership and the Hidden override.

Modules
-------
classifier : classify_pin() / classify_pins() + tier listings, lifecycle
             statistics, recommendations and apply_hidden_flags().
"""
