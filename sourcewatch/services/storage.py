"""
Persistence for monitored sources and extracted articles.

Each store opens a short-lived session per operation from the shared
Database and returns domain models, never ORM rows.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from sourcewatch.models.database import Database, DBExtractedArticle, DBMonitoredSource
from sourcewatch.models.domain import AddResult, ArticleCandidate, ExtractedArticle, MonitoredSource
from sourcewatch.services.data_ingestion.base import (
    DuplicateSourceError,
    SourceNotFoundError,
    as_naive_utc,
    utc_now,
)
from sourcewatch.services.data_ingestion.scheduler import select_due

logger = logging.getLogger(__name__)

# Fields a source may change after creation, besides last_fetched_at
EDITABLE_SOURCE_FIELDS = {"name", "enabled", "fetch_interval_hours"}


class SourceStore:
    """Monitored source records."""

    def __init__(self, database: Database):
        self.database = database

    async def list_all(self) -> list[MonitoredSource]:
        """All sources, oldest first."""
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBMonitoredSource).order_by(DBMonitoredSource.created_at, DBMonitoredSource.id)
            )
            return [MonitoredSource.model_validate(row) for row in result.scalars().all()]

    async def list_due(self, now: Optional[datetime] = None) -> list[MonitoredSource]:
        """Enabled sources whose fetch interval has elapsed."""
        return select_due(await self.list_all(), now or utc_now())

    async def get_by_id(self, source_id: str) -> Optional[MonitoredSource]:
        async with self.database.async_session() as session:
            row = await session.get(DBMonitoredSource, source_id)
            return MonitoredSource.model_validate(row) if row else None

    async def get_by_url(self, url: str) -> Optional[MonitoredSource]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBMonitoredSource).where(DBMonitoredSource.url == url)
            )
            row = result.scalar_one_or_none()
            return MonitoredSource.model_validate(row) if row else None

    async def add(self, source: MonitoredSource) -> MonitoredSource:
        """
        Insert a source.

        Raises:
            DuplicateSourceError: A source with the same URL exists
        """
        row = DBMonitoredSource(
            id=source.id,
            name=source.name,
            url=source.url,
            kind=source.kind.value,
            enabled=source.enabled,
            last_fetched_at=as_naive_utc(source.last_fetched_at) if source.last_fetched_at else None,
            fetch_interval_hours=source.fetch_interval_hours,
            created_at=as_naive_utc(source.created_at),
        )
        async with self.database.async_session() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateSourceError("This URL is already being watched") from e
            return MonitoredSource.model_validate(row)

    async def update(self, source_id: str, **changes) -> MonitoredSource:
        """
        Change a source's name, enabled flag or fetch interval.

        Raises:
            SourceNotFoundError: No source has this id
            ValueError: A field that cannot be edited was passed
        """
        unknown = set(changes) - EDITABLE_SOURCE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit source fields: {', '.join(sorted(unknown))}")

        async with self.database.async_session() as session:
            row = await session.get(DBMonitoredSource, source_id)
            if row is None:
                raise SourceNotFoundError(f"Source not found: {source_id}")
            for name, value in changes.items():
                setattr(row, name, value)
            await session.commit()
            return MonitoredSource.model_validate(row)

    async def update_last_fetched(self, source_id: str, fetched_at: datetime) -> None:
        async with self.database.async_session() as session:
            await session.execute(
                update(DBMonitoredSource)
                .where(DBMonitoredSource.id == source_id)
                .values(last_fetched_at=as_naive_utc(fetched_at))
            )
            await session.commit()

    async def delete(self, source_id: str) -> bool:
        """Delete a source and all of its articles. Returns False if it did not exist."""
        async with self.database.async_session() as session:
            row = await session.get(DBMonitoredSource, source_id)
            if row is None:
                return False
            result = await session.execute(
                delete(DBExtractedArticle).where(DBExtractedArticle.source_id == source_id)
            )
            await session.delete(row)
            await session.commit()

        logger.info(f"Deleted source {source_id} and {result.rowcount} articles")
        return True


class ArticleStore:
    """
    Extracted article records, deduplicated by canonical URL.

    The unique constraint on the URL column is authoritative; the lookup
    in `add` only saves a failed insert in the common case.
    """

    def __init__(self, database: Database):
        self.database = database

    async def add(self, candidate: ArticleCandidate, fetched_at: Optional[datetime] = None) -> AddResult:
        """
        Store a candidate unless an article with the same URL exists.

        Returns:
            AddResult with the stored article, untouched when it already
            existed, and whether this call created it
        """
        existing = await self.get_by_url(candidate.url)
        if existing is not None:
            return AddResult(article=existing, was_new=False)

        row = DBExtractedArticle(
            id=str(uuid.uuid4()),
            source_id=candidate.source_id,
            source_name=candidate.source_name,
            title=candidate.title,
            url=candidate.url,
            published_at=as_naive_utc(candidate.published_at) if candidate.published_at else None,
            fetched_at=as_naive_utc(fetched_at) if fetched_at else utc_now(),
            excerpt=candidate.excerpt,
            matched_keywords=list(candidate.matched_keywords),
            relevance_score=candidate.relevance_score,
            promoted=False,
        )

        async with self.database.async_session() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                # Another writer stored the same URL between lookup and insert
                await session.rollback()
                existing = await self.get_by_url(candidate.url)
                if existing is None:
                    raise
                return AddResult(article=existing, was_new=False)
            return AddResult(article=ExtractedArticle.model_validate(row), was_new=True)

    async def get_by_url(self, url: str) -> Optional[ExtractedArticle]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBExtractedArticle).where(DBExtractedArticle.url == url)
            )
            row = result.scalar_one_or_none()
            return ExtractedArticle.model_validate(row) if row else None

    async def get_by_id(self, article_id: str) -> Optional[ExtractedArticle]:
        async with self.database.async_session() as session:
            row = await session.get(DBExtractedArticle, article_id)
            return ExtractedArticle.model_validate(row) if row else None

    async def mark_promoted(self, article_id: str) -> Optional[ExtractedArticle]:
        """Flag an article as promoted. Returns None if it does not exist."""
        async with self.database.async_session() as session:
            row = await session.get(DBExtractedArticle, article_id)
            if row is None:
                return None
            row.promoted = True
            await session.commit()
            return ExtractedArticle.model_validate(row)

    async def delete(self, article_id: str) -> bool:
        async with self.database.async_session() as session:
            result = await session.execute(
                delete(DBExtractedArticle).where(DBExtractedArticle.id == article_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete_by_source(self, source_id: str) -> int:
        """Delete every article of a source. Returns how many were removed."""
        async with self.database.async_session() as session:
            result = await session.execute(
                delete(DBExtractedArticle).where(DBExtractedArticle.source_id == source_id)
            )
            await session.commit()
            return result.rowcount

    async def list(
        self,
        source_id: Optional[str] = None,
        min_relevance: Optional[int] = None,
        limit: int = 50,
    ) -> list[ExtractedArticle]:
        """Articles newest first, optionally for one source or above a relevance floor."""
        query = select(DBExtractedArticle)
        if source_id:
            query = query.where(DBExtractedArticle.source_id == source_id)
        if min_relevance is not None:
            query = query.where(DBExtractedArticle.relevance_score >= min_relevance)
        query = query.order_by(
            DBExtractedArticle.fetched_at.desc(),
            DBExtractedArticle.published_at.desc(),
        ).limit(limit)

        async with self.database.async_session() as session:
            result = await session.execute(query)
            return [ExtractedArticle.model_validate(row) for row in result.scalars().all()]
