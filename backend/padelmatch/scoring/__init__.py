"""Scoring rules for padel sets."""

from . import padel

__all__ = ["padel"]
