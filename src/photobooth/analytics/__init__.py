"""Prompt popularity analytics backed by Redis."""

from .service import AnalyticsService, TRACK_TYPES

__all__ = ["AnalyticsService", "TRACK_TYPES"]
