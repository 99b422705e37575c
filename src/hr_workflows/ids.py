"""Identifier generation for workflow entities."""

from __future__ import annotations

import itertools
from typing import Protocol, runtime_checkable
from uuid import uuid4


@runtime_checkable
class IdGenerator(Protocol):
    """Produces a new identifier for an entity kind, e.g. ``lr`` for leave requests."""

    def __call__(self, prefix: str) -> str:
        ...


class UuidIdGenerator:
    """Prefixed random ids: ``lr_3f2a...``."""

    def __call__(self, prefix: str) -> str:
        return f"{prefix}_{uuid4().hex}"


class SequentialIdGenerator:
    """Deterministic ids (``lr_1``, ``lr_2``, ...) with one counter per prefix."""

    def __init__(self) -> None:
        self._counters: dict[str, itertools.count] = {}

    def __call__(self, prefix: str) -> str:
        counter = self._counters.setdefault(prefix, itertools.count(1))
        return f"{prefix}_{next(counter)}"


default_id_generator = UuidIdGenerator()
