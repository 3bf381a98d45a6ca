"""Clientvault -- admin API for client records, documents and cascading deletion."""
