"""
SQLAlchemy database models for sourcewatch.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Monitored sources
# =============================================================================

class DBMonitoredSource(Base):
    """A feed or page polled on an interval."""
    __tablename__ = "monitored_sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)  # feed | page
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_fetched_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    fetch_interval_hours: Mapped[int] = mapped_column(Integer, default=24, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Relationships
    articles: Mapped[list["DBExtractedArticle"]] = relationship(
        back_populates="source",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_monitored_sources_enabled", "enabled"),
    )


# =============================================================================
# Extracted articles
# =============================================================================

class DBExtractedArticle(Base):
    """Article extracted from a monitored source. The URL is the dedup key."""
    __tablename__ = "extracted_articles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("monitored_sources.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_name: Mapped[str] = mapped_column(String(255), nullable=False)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    excerpt: Mapped[str] = mapped_column(Text, default="", nullable=False)

    # Tagging
    matched_keywords: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    relevance_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    promoted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    source: Mapped["DBMonitoredSource"] = relationship(back_populates="articles")

    __table_args__ = (
        Index("ix_extracted_articles_source", "source_id"),
        Index("ix_extracted_articles_fetched_at", "fetched_at"),
        Index("ix_extracted_articles_relevance", "relevance_score"),
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str):
        self.engine = create_async_engine(
            database_url,
            echo=False,  # Set to True for SQL logging
        )
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self):
        """Drop all tables (use with caution!)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self):
        """Close pooled connections."""
        await self.engine.dispose()
