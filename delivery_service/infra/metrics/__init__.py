"""Prometheus metrics for the delivery pipeline."""

from .prometheus import REGISTRY

__all__ = ["REGISTRY"]
