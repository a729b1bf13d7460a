"""Fuzzy matching of extracted speaker names against the contact directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from rapport.services.models import Person

DEFAULT_MATCH_THRESHOLD = 0.7


class PersonDirectory(Protocol):
    """Lookup side of the entity store."""

    def list_people(self) -> list[Person]:
        ...

    def find_person_by_name(self, name: str) -> Optional[Person]:
        ...

    def find_person_by_id(self, person_id: str) -> Optional[Person]:
        ...

    def create_person(self, name: str) -> Person:
        ...


def _normalize(name: str) -> str:
    return name.strip().lower()


def _matching_tokens(tokens_a: list[str], tokens_b: list[str]) -> int:
    count = 0
    for token_a in tokens_a:
        for token_b in tokens_b:
            if token_a == token_b or token_b in token_a or token_a in token_b:
                count += 1
                break
    return count


def name_similarity(name_a: str, name_b: str) -> float:
    """Score two names in [0, 1].

    1.0 for an exact match, 0.8 when one contains the other, otherwise the
    share of tokens that overlap, over the larger token count.
    """
    clean_a = _normalize(name_a)
    clean_b = _normalize(name_b)

    if clean_a == clean_b:
        return 1.0
    if not clean_a or not clean_b:
        return 0.0
    if clean_a in clean_b or clean_b in clean_a:
        return 0.8

    tokens_a = clean_a.split()
    tokens_b = clean_b.split()
    # Counting from each side can differ when tokens nest inside each other;
    # the lower count keeps the score symmetric.
    matches = min(_matching_tokens(tokens_a, tokens_b), _matching_tokens(tokens_b, tokens_a))
    return matches / max(len(tokens_a), len(tokens_b))


@dataclass
class IdentityMatch:
    person: Person
    score: float


class IdentityResolver:
    def __init__(
        self, directory: PersonDirectory, threshold: float = DEFAULT_MATCH_THRESHOLD
    ) -> None:
        self._directory = directory
        self._threshold = threshold
        self._logger = logging.getLogger("rapport.identity")

    def resolve(self, name: str) -> Optional[IdentityMatch]:
        """Return the best directory match for ``name``, or None below threshold."""
        try:
            people = self._directory.list_people()
        except Exception as exc:
            self._logger.warning("Directory lookup failed for '%s': %s", name, exc)
            return None

        self._logger.debug("Searching %d people for match to '%s'", len(people), name)
        best: Optional[IdentityMatch] = None
        for person in people:
            if not person.name:
                continue
            score = name_similarity(name, person.name)
            if score >= self._threshold and (best is None or score > best.score):
                best = IdentityMatch(person=person, score=score)

        if best is not None:
            self._logger.info(
                "Matched '%s' to '%s' (score=%.2f)", name, best.person.name, best.score
            )
        else:
            self._logger.info("No directory match for '%s'", name)
        return best
