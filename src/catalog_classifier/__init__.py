"""Semantic taxonomy classification for product catalogs."""

__version__ = "0.1.0"
