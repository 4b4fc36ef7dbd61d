"""ASGI entrypoint: ``uvicorn storyhook.serve:app``.

TESTING=1 skips startup side effects (Postgres table creation).
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storyhook import __version__
from storyhook.webhooks.handlers import register_webhook_routes

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.environ.get("TESTING") != "1" and os.environ.get("STORYHOOK_STORE") == "postgres":
        from storyhook.content.postgres import init_tables

        init_tables()
    logger.info("storyhook %s started", __version__)
    yield


def create_app(namespace: str | None = None) -> FastAPI:
    """Build the FastAPI app with the webhook route registered.

    Python warnings are routed into logging so they never reach a client.
    """
    logging.captureWarnings(True)
    application = FastAPI(title="storyhook", version=__version__, lifespan=lifespan)
    register_webhook_routes(application, namespace=namespace)
    return application


app = create_app()
