"""
MindBoat Push — FastAPI Entry Point

Initializes the FastAPI app, configures logging, and registers the
push and device route handlers.
"""

import logging

from fastapi import FastAPI

from mindboat_push.api.devices import router as devices_router
from mindboat_push.api.push import router as push_router
from mindboat_push.core.config import (
    LOG_LEVEL,
    PROJECT_NAME,
    is_apns_configured,
    is_qstash_configured,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title=f"{PROJECT_NAME} API",
    description="APNs VoIP and Live Activity dispatch for routine reminders",
    version="0.1.0",
)

# --- Register API routers ---
app.include_router(push_router)
app.include_router(devices_router)


@app.get("/health")
async def health_check():
    """Health check endpoint. Returns service status."""
    return {
        "status": "ok",
        "apns_configured": is_apns_configured(),
        "qstash_configured": is_qstash_configured(),
    }
