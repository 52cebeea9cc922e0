"""Command line interface for ccbridge."""

from .main import app, main


__all__ = ["app", "main"]
