"""Readers, writers and cleanup passes for Warcraft III map data files."""

__version__ = "1.0.0"
__all__ = ["__version__"]