"""Transforms that turn settings into generated site files."""
