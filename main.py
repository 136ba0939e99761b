"""
Recruitment engine entry point.

Serves the WhatsApp webhook with uvicorn.

Usage:
    python main.py              # listens on 0.0.0.0:$PORT (default 8080)
"""

import logging
import os

import uvicorn

from recruit_engine.config import settings
from recruit_engine.webhook import create_app

logger = logging.getLogger(__name__)


if __name__ == "__main__":
    port = int(os.getenv("PORT", "8080"))
    logger.info(
        "Starting webhook server on port %d (storage=%s, calendar=%s)",
        port, settings.storage_backend, settings.scheduling.calendar_backend,
    )
    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_level=settings.log_level.lower())
