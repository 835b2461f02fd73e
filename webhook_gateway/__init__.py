"""Inbound webhook gateway: verify, filter, and relay call-platform events."""

__version__ = "1.0.0"
