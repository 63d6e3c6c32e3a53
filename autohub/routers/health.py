from __future__ import annotations

from fastapi import APIRouter, Request

from autohub.core.config import get_settings
from autohub.repositories.json_storage import utc_now_iso

router = APIRouter(prefix="/api", tags=["health"])

PERSISTENCE_MODE = "filesystem"


@router.get("/health")
def health(request: Request):
    settings = get_settings()
    return {
        "ok": True,
        "service": "autohub-backend",
        "env": {
            "persistenceMode": PERSISTENCE_MODE,
            "port": settings.port,
            "corsOrigins": list(settings.cors_origins),
            "dbUrlProvided": bool(settings.db_url),
            "mediaDir": str(request.app.state.storage_dir),
        },
        "timestamp": utc_now_iso(),
    }
