"""Milou SSL -- certificate lifecycle management for the Milou proxy."""

__version__ = "1.0.0"
