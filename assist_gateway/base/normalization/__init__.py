"""Normalization layer: provider bodies to canonical results in metric units."""

from .normalizer import Normalizer, expected_type
from .weather import split_location

__all__ = ["Normalizer", "expected_type", "split_location"]
