"""
Fact store - the structured record of everything known about a target.

Writable only during discovery; ``freeze()`` makes it read-only before any
generation step sees it. The store is passed explicitly to every consumer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from groundwork.core.models.fact import Fact, FactSchema, FactValue

logger = logging.getLogger(__name__)


class FrozenStoreError(RuntimeError):
    """A write was attempted after discovery finished."""


@dataclass(frozen=True)
class Conflict:
    """Two writers proposed the same key; one lost."""

    key: str
    kept: Fact
    discarded: Fact

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "kept": {"source": self.kept.source, "confidence": self.kept.confidence.value},
            "discarded": {
                "source": self.discarded.source,
                "confidence": self.discarded.confidence.value,
                "value": self.discarded.value,
            },
        }


class FactStore:
    """Key -> Fact map with a confidence-based conflict policy.

    Conflict policy for :meth:`propose`:
        - unset key: accepted
        - higher confidence than the current fact: replaces it
        - equal confidence: the writer registered first wins
        - lower confidence: discarded
    """

    def __init__(self, facts: Iterable[Fact] = ()) -> None:
        self._facts: dict[str, Fact] = {}
        self._order: dict[str, int] = {}
        self._conflicts: list[Conflict] = []
        self._frozen = False
        for i, fact in enumerate(facts):
            self.propose(fact, order=i)

    # ── Writes (discovery only) ──────────────────────────────────

    def propose(self, fact: Fact, order: int = 0) -> bool:
        """Offer a fact; return True if it is now the stored value.

        Args:
            fact: The candidate fact.
            order: Registration index of the writer; lower wins ties.
        """
        if self._frozen:
            raise FrozenStoreError(f"fact store is frozen; cannot write {fact.key!r}")

        current = self._facts.get(fact.key)
        if current is None:
            self._facts[fact.key] = fact
            self._order[fact.key] = order
            return True

        current_order = self._order[fact.key]
        wins = fact.outranks(current) or (
            fact.confidence is current.confidence and order < current_order
        )
        if wins:
            self._conflicts.append(Conflict(fact.key, kept=fact, discarded=current))
            self._facts[fact.key] = fact
            self._order[fact.key] = order
            logger.debug(
                "Fact %s: %s (%s) supersedes %s (%s)",
                fact.key, fact.source, fact.confidence.value,
                current.source, current.confidence.value,
            )
            return True

        if fact.value != current.value:
            self._conflicts.append(Conflict(fact.key, kept=current, discarded=fact))
        return False

    def freeze(self) -> FactStore:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ── Reads ────────────────────────────────────────────────────

    def get(self, key: str) -> Fact | None:
        return self._facts.get(key)

    def value(self, key: str, default: FactValue = None) -> FactValue:
        fact = self._facts.get(key)
        return fact.value if fact is not None else default

    def truthy(self, key: str) -> bool:
        """Missing facts are falsy."""
        fact = self._facts.get(key)
        return fact is not None and fact.truthy

    def __contains__(self, key: str) -> bool:
        return key in self._facts

    def __iter__(self) -> Iterator[Fact]:
        return iter(sorted(self._facts.values(), key=lambda f: f.key))

    def __len__(self) -> int:
        return len(self._facts)

    def keys(self) -> list[str]:
        return sorted(self._facts)

    def with_prefix(self, prefix: str) -> dict[str, FactValue]:
        return {k: f.value for k, f in self._facts.items() if k.startswith(prefix)}

    @property
    def conflicts(self) -> list[Conflict]:
        return list(self._conflicts)

    def to_dict(self) -> dict[str, dict]:
        return {
            f.key: {"value": f.value, "confidence": f.confidence.value, "source": f.source}
            for f in self
        }

    def validate_against(self, schema: FactSchema) -> list[str]:
        """Return problems for facts whose key or kind the schema rejects."""
        problems = []
        for fact in self:
            kind = schema.kind_of(fact.key)
            if kind is None:
                problems.append(f"{fact.key}: not in fact schema")
            elif not kind.accepts(fact.value):
                problems.append(f"{fact.key}: expected {kind.value}")
        return problems
