"""Shared building blocks: errors, ports, atomic file IO, app state."""
