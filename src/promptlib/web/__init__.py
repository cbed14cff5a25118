"""Web server package for the prompt library API."""

from .server import create_app

__all__ = ["create_app"]
