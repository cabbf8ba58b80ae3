# FILE: lawdesk/embeddings/models.py
"""
SQLAlchemy models for the stored schema written by the embedding indexer.

The indexer (document ingestion + embedding generation) is a separate batch
job. This service only reads these tables.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text, Index
from sqlalchemy.orm import relationship

from lawdesk.db import Base


class Page(Base):
    """One source document (a markdown page of legal information)."""
    __tablename__ = "nods_page"

    id = Column(Integer, primary_key=True, index=True)
    path = Column(String(512), nullable=False, unique=True)
    checksum = Column(String(128), nullable=True)
    type = Column(String(64), nullable=True)
    source = Column(String(64), nullable=True)
    meta = Column(Text, nullable=True)  # JSON-encoded front matter

    sections = relationship("PageSection", back_populates="page")


class PageSection(Base):
    """
    A passage of a page, eligible for retrieval.

    embedding: JSON-encoded float array produced by the indexer
    """
    __tablename__ = "nods_page_section"

    id = Column(Integer, primary_key=True, index=True)
    page_id = Column(Integer, ForeignKey("nods_page.id"), nullable=True)
    slug = Column(String(256), nullable=True)
    heading = Column(String(512), nullable=True)
    content = Column(Text, nullable=True)
    token_count = Column(Integer, nullable=True)
    embedding = Column(Text, nullable=True)

    page = relationship("Page", back_populates="sections")

    __table_args__ = (
        Index("ix_nods_page_section_page", "page_id"),
    )
