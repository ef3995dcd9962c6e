"""FastAPI application exposing the Alexa webhook and Prometheus metrics."""

from __future__ import annotations

from fastapi import FastAPI

from alexaverify import __version__
from alexaverify.api.webhooks import router as webhooks_router
from alexaverify.observability.metrics import get_metrics_handler

app = FastAPI(title="Alexa Request Verify", version=__version__)
app.include_router(webhooks_router)
app.add_route("/metrics", get_metrics_handler())
