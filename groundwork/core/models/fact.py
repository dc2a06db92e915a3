"""
Fact model - one piece of project knowledge with confidence and provenance.

Facts are produced by detectors (or supplied by the user in groundwork.yml)
and are immutable once created.
"""

from __future__ import annotations

import fnmatch
import re
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, field_validator

FactValue = Union[str, bool, list[str], None]

# Dotted, lowercase segments: commands.test, tools.git.available
KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*(\.[a-z0-9_*-]+)*$")


class Confidence(str, Enum):
    """How much a fact can be trusted, strongest first."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    DEFAULT = "default"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def clamp(self, ceiling: Confidence) -> Confidence:
        """Return the weaker of this confidence and ``ceiling``."""
        return self if self.rank <= ceiling.rank else ceiling


_RANKS = {
    Confidence.HIGH: 3,
    Confidence.MEDIUM: 2,
    Confidence.LOW: 1,
    Confidence.DEFAULT: 0,
}


class FactKind(str, Enum):
    """Closed set of value kinds a fact key may hold."""

    STRING = "string"
    BOOL = "bool"
    LIST = "list"

    def accepts(self, value: FactValue) -> bool:
        if value is None:
            return True
        if self is FactKind.BOOL:
            return isinstance(value, bool)
        if self is FactKind.STRING:
            return isinstance(value, str)
        return isinstance(value, list) and all(isinstance(v, str) for v in value)

    @classmethod
    def of(cls, value: FactValue) -> FactKind:
        """Infer the kind of a concrete value (used for user-supplied facts)."""
        if isinstance(value, bool):
            return cls.BOOL
        if isinstance(value, list):
            return cls.LIST
        return cls.STRING


class Fact(BaseModel):
    """A single discovered or supplied fact."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: FactValue = None
    confidence: Confidence = Confidence.DEFAULT
    source: str = ""

    @field_validator("key")
    @classmethod
    def _check_key(cls, v: str) -> str:
        if not is_valid_key(v) or "*" in v:
            raise ValueError(f"invalid fact key: {v!r}")
        return v

    @property
    def truthy(self) -> bool:
        return bool(self.value)

    def outranks(self, other: Fact) -> bool:
        return self.confidence.rank > other.confidence.rank


def is_valid_key(key: str) -> bool:
    return bool(KEY_PATTERN.match(key))


class FactSchema:
    """Known fact keys and their kinds, built from the detector catalog.

    Patterns may contain ``*`` (e.g. ``tools.*.available``).
    """

    def __init__(self, entries: dict[str, FactKind] | None = None) -> None:
        self._entries: dict[str, FactKind] = {}
        for pattern, kind in (entries or {}).items():
            self.declare(pattern, kind)

    def declare(self, pattern: str, kind: FactKind) -> None:
        existing = self._entries.get(pattern)
        if existing is not None and existing is not kind:
            raise ValueError(
                f"fact key {pattern!r} declared as both {existing.value} and {kind.value}"
            )
        self._entries[pattern] = kind

    def kind_of(self, key: str) -> FactKind | None:
        if key in self._entries:
            return self._entries[key]
        for pattern, kind in self._entries.items():
            if "*" in pattern and fnmatch.fnmatchcase(key, pattern):
                return kind
        return None

    def __contains__(self, key: str) -> bool:
        return self.kind_of(key) is not None

    @property
    def patterns(self) -> list[str]:
        return sorted(self._entries)
