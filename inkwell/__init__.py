"""Inkwell: a creative-writing assistant backend."""

__version__ = "0.1.0"
