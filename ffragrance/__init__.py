"""Ffragrance: aroma chemical inventory and formula composition."""

__version__ = "1.4.0"
