# src/pipeline/__init__.py - v1
"""Step execution engine."""
