"""Reimburse: expense approval workflow engine."""

__version__ = "0.3.0"
