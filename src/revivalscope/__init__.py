"""Repository abandonment and revival potential scoring."""

__version__ = "0.1.0"
