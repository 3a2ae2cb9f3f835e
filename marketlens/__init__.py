"""Keyword-indexed market matching: spot vocabulary keywords in text and rank tagged markets."""

__version__ = "0.1.0"
