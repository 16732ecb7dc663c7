"""Parsing helpers for JSON emitted by completion providers."""

from __future__ import annotations

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_model(raw: str | None, schema: type[T]) -> T | None:
    """Validate ``raw`` as a JSON object of ``schema``; None if unusable.

    Tolerates markdown code fences and prose around a single JSON object.
    """
    if not raw or not raw.strip():
        return None
    text = _FENCE.sub("", raw.strip())
    if not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            return None
        text = text[start : end + 1]
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return schema.model_validate(data)
    except ValidationError:
        return None
