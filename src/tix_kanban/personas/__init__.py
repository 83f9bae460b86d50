"""Persona catalog: markdown prompt templates with a YAML header."""
