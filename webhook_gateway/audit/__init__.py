"""Append-only audit trail of gateway decisions."""
