from __future__ import annotations

import logging

from fastapi import Header, HTTPException, Request

from storage_archiver.common.config import get_settings
from storage_archiver.services.archiver import Archiver

logger = logging.getLogger("http")


def get_archiver(request: Request) -> Archiver:
    return request.app.state.archiver


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if settings.API_KEY_ENABLED:
        if not x_api_key or x_api_key != settings.API_KEY:
            preview = f"{x_api_key[:4]}***" if x_api_key else "<missing>"
            logger.warning("api_key_mismatch api_key_preview=%s", preview)
            raise HTTPException(status_code=401, detail="Invalid API key")
