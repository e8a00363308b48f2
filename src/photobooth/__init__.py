"""Photobooth backend: proxy, analytics and generation workflows."""

__version__ = "0.1.0"
