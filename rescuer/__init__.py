"""Atomic recovery of assets from a compromised account via private bundles."""

__version__ = "0.1.0"
