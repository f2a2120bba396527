# src/config/__init__.py - v1
"""Deployment settings and podci.toml validation."""
