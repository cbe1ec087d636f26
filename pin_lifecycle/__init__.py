"""
Pin lifecycle and ranking core.

Time-decayed relevance scoring, Recent / Trending / Classics tiering,
validation, migration and healing for collections of saved location pins.
"""

__version__ = "0.1.0"
