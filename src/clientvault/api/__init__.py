"""Clientvault HTTP API routers."""

from clientvault.api.clients import router as clients_router
from clientvault.api.deletion import router as deletion_router

__all__ = ["clients_router", "deletion_router"]
