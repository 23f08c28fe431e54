"""
Web UI Module - FastAPI-based JSON API
======================================

This module provides the HTTP API of the chat rule bot, including:
- Bot status
- Rule listing and validation
- Test message simulator
- Action documentation
- Raising synthetic events
"""

from .app import create_app, run_app
from .routes import router

__all__ = [
    "create_app",
    "run_app",
    "router",
]
