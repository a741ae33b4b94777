"""Middleware package for the combat arbiter."""

from arbiter.middleware.error_handler import setup_error_handlers

__all__ = [
    "setup_error_handlers",
]
