"""
TruthForge — Common Primitives

Shared enums, base classes, and utilities used across all systems.
"""

from __future__ import annotations

import enum
import math
import re
from datetime import datetime, timezone
from typing import Any

import orjson
from pydantic import BaseModel
from ulid import ULID


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


# ISO-8601 instants as emitted by both JS (`...T12:00:00.000Z`) and Python
# (`...T12:00:00.123456+00:00`) serializers
ISO_TIMESTAMP_RE = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})?"
)
TIMESTAMP_PLACEHOLDER = "TIMESTAMP"


def to_json_bytes(value: Any, *, indent: bool = False) -> bytes:
    """Serialize plain data or pydantic models with orjson, keys sorted."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    option = orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS
    if indent:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(value, option=option, default=str)


def percentage(score: float, max_score: float) -> int:
    """round(100 * score / max_score) with halves rounded up; 0 when max_score is 0."""
    if max_score <= 0:
        return 0
    return int(math.floor(100 * score / max_score + 0.5))


def normalize_timestamps(text: str) -> str:
    """Replace every timestamp-shaped substring with a constant placeholder."""
    return ISO_TIMESTAMP_RE.sub(TIMESTAMP_PLACEHOLDER, text)


# ─── Enums ────────────────────────────────────────────────────────


class StepOutcome(enum.StrEnum):
    """Result class of one pipeline step: contained, degraded, or fatal."""

    SUCCESS = "success"
    DEGRADED = "degraded"
    FATAL = "fatal"


class HealthStatus(str, enum.Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    ERROR = "error"


# ─── Base Models ──────────────────────────────────────────────────


class TFBaseModel(BaseModel):
    """Base model for all TruthForge records. Uses ULID IDs and UTC timestamps."""

    model_config = {"populate_by_name": True, "from_attributes": True}


class EvidenceModel(TFBaseModel):
    """
    Base for records produced by evidence sources.

    Sources are free to attach fields beyond their declared schema; the
    engine only reads what it knows about and passes the rest through
    into reports untouched.
    """

    model_config = {"populate_by_name": True, "from_attributes": True, "extra": "allow"}
