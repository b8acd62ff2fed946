"""Collabora API - session and tenant authorization service."""

__version__ = "2.1.0"
