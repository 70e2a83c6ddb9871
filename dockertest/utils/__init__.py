"""Utility functions for dockertest."""

from .logging import setup_logging
from .naming import generate_run_id, generate_suffix

__all__ = [
    "setup_logging",
    "generate_run_id",
    "generate_suffix",
]
