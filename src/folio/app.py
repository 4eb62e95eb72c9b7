"""FastAPI application serving the page store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI

from . import __version__
from .http_rpc import router as rpc_router

logger = logging.getLogger(__name__)

app = FastAPI(title="Folio", version=__version__)
app.include_router(rpc_router)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
