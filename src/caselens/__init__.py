"""Resumable batch text-classification runs."""

__version__ = "0.1.0"
