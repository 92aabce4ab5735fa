"""Gatehouse: authentication, session and presence service."""

__version__ = "0.3.0"
