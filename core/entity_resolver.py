"""Match free-text name fragments against live backend entities.

Resolution is plain case-insensitive substring containment over display
names. There is no tokenizing and no edit distance, so the outcome for a given
fragment and candidate list is always predictable: zero hits is ``none``, one
hit is ``unique``, and several hits are ``many`` in the candidates' original
order. ``match_reply`` re-resolves a user's answer to a disambiguation question
strictly against the options that were offered.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

NONE = "none"
UNIQUE = "unique"
MANY = "many"

_ORDINAL_WORDS = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "sixth": 6,
    "seventh": 7,
    "eighth": 8,
    "ninth": 9,
    "tenth": 10,
}
_ORDINAL_PATTERN = re.compile(
    r"^(?:the\s+|option\s+|number\s+|no\.?\s*|#)?"
    r"(?P<value>\d{1,2}|" + "|".join(_ORDINAL_WORDS) + r"|last)"
    r"(?:st|nd|rd|th)?(?:\s+(?:one|option))?(?:\s+please)?[.!]?$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Entity:
    """A backend record reduced to what disambiguation needs."""

    id: str
    display_name: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def to_option(self) -> Dict[str, Any]:
        option: Dict[str, Any] = {"id": self.id, "name": self.display_name}
        option.update({key: value for key, value in self.attributes.items() if value not in (None, "")})
        return option

    @classmethod
    def from_option(cls, option: Mapping[str, Any]) -> "Entity":
        attributes = {key: value for key, value in option.items() if key not in {"id", "name"}}
        return cls(id=str(option.get("id", "")), display_name=str(option.get("name", "")), attributes=attributes)

    def describe(self) -> str:
        details = ", ".join(f"{key} {value}" for key, value in self.attributes.items() if value not in (None, ""))
        return f"{self.display_name} ({details})" if details else self.display_name


@dataclass(frozen=True)
class MatchSet:
    kind: str
    entities: Tuple[Entity, ...] = ()

    @property
    def is_none(self) -> bool:
        return self.kind == NONE

    @property
    def is_unique(self) -> bool:
        return self.kind == UNIQUE

    @property
    def is_many(self) -> bool:
        return self.kind == MANY

    @property
    def entity(self) -> Optional[Entity]:
        return self.entities[0] if self.kind == UNIQUE else None

    @classmethod
    def of(cls, entities: Sequence[Entity]) -> "MatchSet":
        if not entities:
            return cls(NONE)
        if len(entities) == 1:
            return cls(UNIQUE, (entities[0],))
        return cls(MANY, tuple(entities))


def entities_from(
    records: Iterable[Mapping[str, Any]],
    *,
    id_key: str = "id",
    name_key: str = "name",
    attribute_keys: Sequence[str] = (),
) -> List[Entity]:
    """Convert backend records into ``Entity`` objects, skipping records without id or name."""

    entities: List[Entity] = []
    for record in records:
        entity_id = record.get(id_key)
        name = record.get(name_key)
        if entity_id in (None, "") or not name:
            continue
        attributes = {key: record.get(key) for key in attribute_keys if record.get(key) not in (None, "")}
        entities.append(Entity(id=str(entity_id), display_name=str(name), attributes=attributes))
    return entities


def resolve(fragment: str, candidates: Iterable[Entity]) -> MatchSet:
    """Classify how many candidates contain ``fragment`` in their display name.

    Matching is a plain case-insensitive substring test, so an empty fragment
    matches every candidate. Callers ask for the missing name before resolving.
    """

    needle = (fragment or "").lower()
    return MatchSet.of([entity for entity in candidates if needle in entity.display_name.lower()])


# WHAT: decide which offered option a disambiguation reply refers to.
# WHY: the reply must bind to one of the options already shown, never to a fresh search.
# HOW: try id tokens, ordinals, names quoted inside the reply, then a substring resolve over the option names.
def match_reply(reply: str, options: Sequence[Entity]) -> MatchSet:
    text = " ".join((reply or "").split())
    if not text or not options:
        return MatchSet(NONE)
    lowered = text.lower()

    by_id = [option for option in options if option.id and re.search(rf"(?<![\w-]){re.escape(option.id.lower())}(?![\w-])", lowered)]
    if len(by_id) == 1:
        return MatchSet.of(by_id)

    ordinal = _ORDINAL_PATTERN.match(lowered)
    if ordinal:
        value = ordinal.group("value")
        if value == "last":
            return MatchSet.of([options[-1]])
        index = int(value) if value.isdigit() else _ORDINAL_WORDS[value]
        if 1 <= index <= len(options):
            return MatchSet.of([options[index - 1]])

    contained = [option for option in options if option.display_name and option.display_name.lower() in lowered]
    if contained:
        longest = max(len(option.display_name) for option in contained)
        contained = [option for option in contained if len(option.display_name) == longest]
        if len(contained) > 1:
            narrowed = _narrow_by_attributes(lowered, contained)
            if narrowed:
                return MatchSet.of(narrowed)
        return MatchSet.of(contained)

    by_fragment = resolve(text, options)
    if not by_fragment.is_none:
        return by_fragment

    narrowed = _narrow_by_attributes(lowered, options)
    return MatchSet.of(narrowed)


def _narrow_by_attributes(lowered_reply: str, options: Sequence[Entity]) -> List[Entity]:
    """Keep options whose attribute values (e.g. section) appear as whole words in the reply."""
    hits = []
    for option in options:
        for value in option.attributes.values():
            token = str(value).strip().lower()
            if token and re.search(rf"(?<!\w){re.escape(token)}(?!\w)", lowered_reply):
                hits.append(option)
                break
    return hits


def format_options(entities: Sequence[Entity]) -> str:
    return "\n".join(f"{index}. {entity.describe()}" for index, entity in enumerate(entities, start=1))


__all__ = [
    "Entity",
    "MANY",
    "MatchSet",
    "NONE",
    "UNIQUE",
    "entities_from",
    "format_options",
    "match_reply",
    "resolve",
]
