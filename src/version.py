# src/version.py - v1
"""Package version, embedded in manifests and template image tags."""

__version__ = "0.1.0"
