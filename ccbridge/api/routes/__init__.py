"""API routes for the ccbridge server."""
