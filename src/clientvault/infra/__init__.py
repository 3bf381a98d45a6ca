"""Clientvault infrastructure adapters."""
