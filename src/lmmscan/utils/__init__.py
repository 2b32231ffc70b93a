"""Utility helpers for lmmscan."""
