"""Webhook verification pipeline, event filter and downstream relay."""
