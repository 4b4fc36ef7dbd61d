"""Webhook HTTP handler — FastAPI route for the StoryChief webhook.

The handler:
1. Reads the raw body (the MAC is computed over its decoded form)
2. Hands it to the router in a worker thread (store writes are blocking)
3. Returns the router's body and status as JSON

Security contract:
- No transport-level auth; the body MAC is the only authorization
- Error bodies carry a stable code and message, never internal details
"""

from __future__ import annotations

import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from storyhook.webhooks.router import handle

logger = logging.getLogger(__name__)

_NAMESPACE = os.environ.get("STORYHOOK_NAMESPACE", "storychief").strip("/")


async def _handle_webhook(request: Request) -> JSONResponse:
    """Generic webhook handler. 200 on success, error status otherwise."""
    start = time.time()

    body = await request.body()
    content, status_code = await run_in_threadpool(handle, body)

    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: status=%d", elapsed_ms, status_code)

    return JSONResponse(content, status_code=status_code)


def register_webhook_routes(app: FastAPI, namespace: str | None = None) -> str:
    """Register the webhook endpoint on the FastAPI app. Returns its path."""
    path = f"/{(namespace or _NAMESPACE).strip('/')}/webhook"

    @app.post(path)
    async def storychief_webhook(request: Request):
        """Receive StoryChief webhooks (MAC-verified)."""
        return await _handle_webhook(request)

    logger.info("Webhook route registered: POST %s", path)
    return path
