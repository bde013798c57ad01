"""Nebula Gateway - session and entitlement control plane."""

__version__ = "1.0.0"
