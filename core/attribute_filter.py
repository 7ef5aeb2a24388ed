"""
Attribute filter: ALL/ANY membership of requested terms in a record's terms.

Terms are observed variable names (std_terms) for observations and species
identifiers (properties.species_list) for occurrences. Matching is exact and
case-sensitive; only the ALL/ANY selector is case-insensitive.
"""

from enum import Enum
from typing import Iterable, Optional

from core.errors import ValidationError


class MatchMode(str, Enum):
    ALL = "ALL"
    ANY = "ANY"

    @classmethod
    def parse(cls, value) -> "MatchMode":
        """Normalize a request token ('all', 'Any', ...) to a MatchMode."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(
                f"Match mode must be ALL or ANY, got {value!r}", field="which",
            ) from None


def matches(
    requested: Iterable[str],
    record_terms: Optional[Iterable[str]],
    mode: MatchMode = MatchMode.ALL,
) -> bool:
    """
    True if the record qualifies under `mode`.

    An empty request matches every record, including records without terms.
    """
    requested = set(requested or ())
    if not requested:
        return True
    present = set(record_terms or ())
    if mode is MatchMode.ALL:
        return requested <= present
    return not requested.isdisjoint(present)


def keep_terms(properties: Optional[dict], terms: Iterable[str]) -> dict:
    """Project a properties map down to the requested term keys."""
    terms = set(terms or ())
    if not properties:
        return {}
    if not terms:
        return dict(properties)
    return {k: v for k, v in properties.items() if k in terms}
