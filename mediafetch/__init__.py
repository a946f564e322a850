"""Media URL metadata lookup and download streaming service."""

__version__ = "1.0.0"
