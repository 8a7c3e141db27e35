from sqlalchemy import Column, String, Integer, DateTime, Index
from models.base import Base, JSONType


class CatalogRecordMixin:
    """
    Columns shared by every mirrored upstream record.

    The full upstream envelope is kept in ``data``; the scalar columns
    are copies of the fields readers filter and order on.
    """
    key = Column(String(64), primary_key=True)  # e.g. /authors/OL1A
    type = Column(String(64), nullable=False)  # e.g. /type/author, /type/redirect
    revision = Column(Integer, nullable=True)
    last_modified = Column(DateTime, nullable=True, index=True)
    data = Column(JSONType, nullable=False)


class AuthorRecord(CatalogRecordMixin, Base):
    __tablename__ = "authors"


class WorkRecord(CatalogRecordMixin, Base):
    __tablename__ = "works"


class EditionRecord(CatalogRecordMixin, Base):
    """
    Editions always record their parent work so joins stay consistent
    even when the work was mirrored in a different run.
    """
    __tablename__ = "editions"

    work_key = Column(String(64), nullable=True, index=True)


class AuthorWork(Base):
    """
    Author -> work relation derived from each work's primary author.

    Answers "which works does this author have" without reading payloads.
    """
    __tablename__ = "author_works"

    author_key = Column(String(64), primary_key=True)
    work_key = Column(String(64), primary_key=True)

    __table_args__ = (
        Index("idx_author_works_work", "work_key"),
    )
