"""
PRREVIEW Orchestrator Module
============================

Process-level plumbing: logging setup and the maintenance CLI.

Usage:
    python -m src.orchestrator.cli rebuild
"""

from .logging_config import setup_logging, setup_logging_from_settings, JSONFormatter

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "JSONFormatter",
]
