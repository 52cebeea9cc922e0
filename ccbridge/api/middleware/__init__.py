"""Middleware and exception handlers for the ccbridge server."""
