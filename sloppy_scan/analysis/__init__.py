"""Lightweight, pattern-based source analysis (no parsing)."""
