"""Cached cost estimates for image, video, audio and camera-angle jobs."""

from .estimator import CostEstimate, CostEstimator

__all__ = ["CostEstimate", "CostEstimator"]
