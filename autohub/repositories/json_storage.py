"""
JSON file persistence shared by every store.

Each store owns one document on disk. Reads never raise for a missing or
malformed file: the caller's fallback is returned instead.
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def load(path: Path, fallback: Any) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return copy.deepcopy(fallback)


def save(path: Path, data: Any) -> None:
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp, path)


async def read_json(path: Path, fallback: Any) -> Any:
    return await asyncio.to_thread(load, path, fallback)


async def write_json(path: Path, data: Any) -> None:
    await asyncio.to_thread(save, path, data)


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def new_id() -> str:
    return str(uuid.uuid4())


def new_token() -> str:
    return uuid.uuid4().hex


def as_text(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def stamp(record: dict) -> dict:
    """Copy of a document with a fresh ``updatedAt``."""
    return {**record, "updatedAt": utc_now_iso()}
