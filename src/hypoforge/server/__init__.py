"""FastAPI application exposing run processing and control."""

from hypoforge.server.app import create_app

__all__ = ["create_app"]
