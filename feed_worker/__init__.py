"""Connpass feed polling and event reminder worker."""

__version__ = "0.1.0"
