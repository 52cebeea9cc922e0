"""API layer for the ccbridge server."""

from ccbridge.api.app import create_app


__all__ = ["create_app"]
