"""
Pydantic schemas for upstream payloads: record envelopes and change feed entries
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any


class TypeRef(BaseModel):
    """``{"key": "/type/author"}`` style reference"""
    key: str = Field(..., min_length=1)


class KeyRef(BaseModel):
    key: Optional[str] = None


class RecordEnvelope(BaseModel):
    """
    Canonical upstream representation of one author, work or edition.

    Only the fields the engine reads are declared; everything else is
    kept as extra data and stored verbatim with the record.
    """
    key: str = Field(..., min_length=1)
    type: TypeRef
    revision: Optional[int] = None
    last_modified: Optional[Dict[str, Any]] = None

    # Edition payload
    works: Optional[List[KeyRef]] = None

    # Work payload: [{"author": {"key": "/authors/OL1A"}, "type": {...}}]
    authors: Optional[List[Dict[str, Any]]] = None

    @validator("key")
    def strip_key(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("key cannot be empty")
        return v

    @validator("works", "authors", pre=True)
    def drop_non_list(cls, v):
        """Upstream occasionally sends objects where lists belong"""
        if v is None or isinstance(v, list):
            return v
        return None

    @property
    def work_key(self) -> Optional[str]:
        """Parent work of an edition (first entry of ``works``)"""
        if self.works:
            return self.works[0].key
        return None

    @property
    def primary_author_key(self) -> Optional[str]:
        """Primary author of a work (first entry of ``authors``)"""
        if not self.authors:
            return None
        author = self.authors[0].get("author") if isinstance(self.authors[0], dict) else None
        if isinstance(author, dict) and isinstance(author.get("key"), str):
            return author["key"]
        return None

    class Config:
        extra = "allow"


class ChangeRef(BaseModel):
    key: str


class ChangeEntry(BaseModel):
    """One entry of the recent-changes feed"""
    changes: List[ChangeRef] = Field(default_factory=list)

    @validator("changes", pre=True)
    def keep_keyed_changes(cls, v):
        """Changes without a string key carry nothing to sync"""
        if not isinstance(v, list):
            return []
        return [c for c in v if isinstance(c, dict) and isinstance(c.get("key"), str)]

    class Config:
        extra = "ignore"
