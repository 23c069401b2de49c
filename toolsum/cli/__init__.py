"""Command line interface for toolsum."""

from .main import main

__all__ = ["main"]
