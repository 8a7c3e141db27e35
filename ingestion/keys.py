"""
Entity kinds and key classification.

Upstream keys carry their entity kind in the namespace prefix
(``/authors/OL1A``, ``/works/OL1W``, ``/books/OL1M``). Classification
happens here only; everything else dispatches on ``EntityKind``.
"""

import enum
from typing import Optional

from core.exceptions import UnknownEntityKindError


class EntityKind(str, enum.Enum):
    AUTHOR = "author"
    WORK = "work"
    EDITION = "edition"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]

    @property
    def queue_key(self) -> str:
        """Control-state key holding this kind's pending queue"""
        return f"pending_{self.value}_keys"

    @classmethod
    def for_key(cls, key: str) -> Optional["EntityKind"]:
        """Kind of the given key, or None for unrecognized namespaces"""
        if not isinstance(key, str):
            return None
        for kind, prefix in _PREFIXES.items():
            if key.startswith(prefix):
                return kind
        return None

    @classmethod
    def classify(cls, key: str) -> "EntityKind":
        """Like ``for_key`` but raises for unrecognized namespaces"""
        kind = cls.for_key(key)
        if kind is None:
            raise UnknownEntityKindError(
                f"Unknown model key type: {key}",
                context={"key": key}
            )
        return kind


_PREFIXES = {
    EntityKind.AUTHOR: "/authors/",
    EntityKind.WORK: "/works/",
    EntityKind.EDITION: "/books/",
}

# Processing order is a correctness requirement: authors, works, editions
PROCESSING_ORDER = (EntityKind.AUTHOR, EntityKind.WORK, EntityKind.EDITION)
