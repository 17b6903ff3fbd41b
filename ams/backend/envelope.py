"""Decoding of the backend's list envelopes.

The AMS backend serializes collections in several shapes depending on the
controller and its JSON settings:

- a bare JSON array
- ``{"$id": "1", "$values": [...]}`` (reference-preserving serializer)
- ``{"values": [...]}``
- ``{"data": [...]}``

Every response is decoded exactly once, here, into an :class:`Envelope`.
Anything unrecognized decodes to an empty list instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

EnvelopeKind = Literal["array", "$values", "values", "data", "empty"]

# Checked in this order; the first key holding a list wins.
WRAPPER_KEYS: tuple[EnvelopeKind, ...] = ("$values", "values", "data")

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class Envelope:
    """A decoded backend collection."""

    kind: EnvelopeKind
    items: list[Any] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items


def decode_envelope(payload: Any) -> Envelope:
    """Classify a backend payload and extract its items."""
    if isinstance(payload, list):
        return Envelope("array", payload)
    if isinstance(payload, dict):
        for key in WRAPPER_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return Envelope(key, value)
    return Envelope("empty", [])


def unwrap(payload: Any) -> list[Any]:
    """Return the items of any supported envelope, or ``[]``."""
    return decode_envelope(payload).items


def unwrap_one(payload: Any) -> Any:
    """Unwrap a single-object response that may sit under ``data``."""
    if isinstance(payload, dict):
        inner = payload.get("data")
        if isinstance(inner, dict):
            return inner
    return payload


def parse_records(model: type[ModelT], payload: Any) -> list[ModelT]:
    """Unwrap ``payload`` and validate each item as ``model``.

    Items that are not objects or fail validation are logged and skipped.
    """
    records: list[ModelT] = []
    for item in unwrap(payload):
        if not isinstance(item, dict):
            logger.debug("Skipping non-object %s item: %r", model.__name__, item)
            continue
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed %s record: %s", model.__name__, exc.errors()[:1])
    return records
