"""Pricing policy."""

from .calculator import apply_rounding, clamp, compute_price

__all__ = ["apply_rounding", "clamp", "compute_price"]
