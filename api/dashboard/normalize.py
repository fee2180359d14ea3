"""
Upstream payload normalization.

- student service returns a bare list
- drive service wraps its list as {"data": [...]}

Malformed elements are dropped (and logged) instead of failing the request;
the transport call already succeeded, so derived counts degrade instead.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from .schemas import DriveRecord, StudentRecord

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


def _unwrap(payload: Any, *, envelope_key: str = "data") -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        items = payload.get(envelope_key)
        if isinstance(items, list):
            return items
        if items is not None:
            logger.warning("envelope_not_a_list key=%s type=%s", envelope_key, type(items).__name__)
        return []
    logger.warning("unexpected_payload type=%s", type(payload).__name__)
    return []


def _parse_items(items: list[Any], model: type[RecordT], *, source: str) -> list[RecordT]:
    parsed: list[RecordT] = []
    dropped = 0
    for item in items:
        if not isinstance(item, dict):
            dropped += 1
            continue
        try:
            parsed.append(model.model_validate(item))
        except ValidationError:
            dropped += 1

    if dropped:
        logger.warning("malformed_records_dropped source=%s dropped=%d kept=%d", source, dropped, len(parsed))
    return parsed


def normalize_students(payload: Any) -> list[StudentRecord]:
    return _parse_items(_unwrap(payload), StudentRecord, source="students")


def normalize_drives(payload: Any) -> list[DriveRecord]:
    """
    Unwrap the drive service envelope. A missing or null `data` field is an
    empty drive list, not an error.
    """
    return _parse_items(_unwrap(payload), DriveRecord, source="drives")
