"""Parsers for on-disk npm metadata."""
