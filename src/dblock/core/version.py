"""Version information for dblock."""

__version__ = "0.1.0"
