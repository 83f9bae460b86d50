"""Markdown report files."""
