"""Content-Security-Policy composition and header emission."""

__version__ = "0.1.0"
