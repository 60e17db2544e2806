"""Command-line interface for convoflow."""
from .app import app

__all__ = ["app"]
