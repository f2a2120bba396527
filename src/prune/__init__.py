# src/prune/__init__.py - v1
"""Cache volume retention policy."""
