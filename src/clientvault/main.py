"""ASGI entry point.

Usage::

    uvicorn clientvault.main:app
"""

from __future__ import annotations

from clientvault.infra.fastapi import create_app

app = create_app()
