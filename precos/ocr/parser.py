"""Tolerant parsing of the vision model's raw text output."""

from __future__ import annotations

import json
import logging
import re

from .models import CandidateItem

logger = logging.getLogger(__name__)

# Length of the raw text kept as the name of a degraded item.
FALLBACK_NAME_LENGTH = 200
FALLBACK_CONFIDENCE = 0.5

_FENCED = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def _extract_json(text: str):
    """Return the JSON payload embedded in *text*.

    Prefers a fenced code block, then the outermost ``{...}`` span, then the
    whole text. Raises ValueError if none of them is valid JSON.
    """
    fenced = _FENCED.search(text)
    if fenced:
        return json.loads(fenced.group(1))

    match = _OBJECT.search(text)
    if match:
        return json.loads(match.group(0))

    return json.loads(text)


def parse_response(text: str) -> list[CandidateItem]:
    """Parse candidate items out of the model's response.

    Never raises. If no usable JSON is found, a single low-confidence item
    named after the first characters of the raw text is returned so that the
    image still produces something to review.
    """
    try:
        payload = _extract_json(text or "")
    except ValueError:
        logger.warning("Resposta do modelo sem JSON válido; criando item degradado")
        return [_fallback_item(text)]

    if isinstance(payload, dict):
        raw_items = payload.get("items") or []
    elif isinstance(payload, list):
        raw_items = payload
    else:
        return [_fallback_item(text)]

    if not isinstance(raw_items, list):
        return [_fallback_item(text)]

    items: list[CandidateItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            logger.debug("Ignorando item não-objeto: %r", raw)
            continue
        items.append(CandidateItem.from_dict(raw))
    return items


def _fallback_item(text: str | None) -> CandidateItem:
    return CandidateItem(
        name=(text or "")[:FALLBACK_NAME_LENGTH],
        confidence=FALLBACK_CONFIDENCE,
    )
