"""
Response Cache
==============
Persistent fingerprint -> completion cache with lazy expiry.

Every persistence failure degrades to a miss or a no-op; the cache never
fails a completion.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import uuid4

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway.database import STORE_ERRORS
from gateway.models.base import ensure_utc, utc_now
from gateway.models.cache import AIRequestCache
from gateway.schemas.usage import CacheStats

logger = structlog.get_logger()


@dataclass(frozen=True)
class CachedResponse:
    content: str
    provider: str
    model: str
    tokens_used: int
    hit_count: int
    created_at: datetime
    expires_at: datetime


def upsert(session: AsyncSession, model):
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


class CacheStore:
    """Response cache backed by the ``ai_request_cache`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        default_ttl: int = 24 * 60 * 60,
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._session_factory = session_factory
        self.default_ttl = default_ttl

    async def get(self, fingerprint: str) -> CachedResponse | None:
        """
        Look up a live entry and count the hit.
        Entries at or past ``expires_at`` are treated as absent.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(AIRequestCache).where(
                        AIRequestCache.request_hash == fingerprint,
                        AIRequestCache.expires_at > utc_now(),
                    )
                )
                entry = result.scalar_one_or_none()
                if entry is None:
                    logger.debug("Cache miss", fingerprint=fingerprint[:12])
                    return None

                await session.execute(
                    update(AIRequestCache)
                    .where(AIRequestCache.id == entry.id)
                    .values(hit_count=AIRequestCache.hit_count + 1)
                )
                await session.commit()
        except STORE_ERRORS as e:
            logger.error("Cache lookup failed", fingerprint=fingerprint[:12], error=str(e))
            return None

        logger.info("Cache hit", fingerprint=fingerprint[:12], hits=entry.hit_count + 1)
        return CachedResponse(
            content=entry.response_content,
            provider=entry.provider,
            model=entry.model,
            tokens_used=entry.tokens_used,
            hit_count=entry.hit_count + 1,
            created_at=ensure_utc(entry.created_at),
            expires_at=ensure_utc(entry.expires_at),
        )

    async def put(
        self,
        fingerprint: str,
        content: str,
        tokens_used: int,
        ttl: int | None = None,
        provider: str = "",
        model: str = "",
    ) -> None:
        """Insert or replace an entry, extending its expiry."""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")

        now = utc_now()
        expires_at = now + timedelta(seconds=ttl)
        try:
            async with self._session_factory() as session:
                stmt = upsert(session, AIRequestCache).values(
                    id=uuid4(),
                    request_hash=fingerprint,
                    provider=provider,
                    model=model,
                    response_content=content,
                    tokens_used=tokens_used,
                    created_at=now,
                    expires_at=expires_at,
                    hit_count=0,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[AIRequestCache.request_hash],
                    set_={
                        "provider": stmt.excluded.provider,
                        "model": stmt.excluded.model,
                        "response_content": stmt.excluded.response_content,
                        "tokens_used": stmt.excluded.tokens_used,
                        "expires_at": stmt.excluded.expires_at,
                    },
                )
                await session.execute(stmt)
                await session.commit()
        except STORE_ERRORS as e:
            logger.error("Cache write failed", fingerprint=fingerprint[:12], error=str(e))
            return

        logger.info("Cached response", fingerprint=fingerprint[:12], ttl=ttl)

    async def sweep_expired(self) -> int:
        """Delete expired entries."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(AIRequestCache).where(AIRequestCache.expires_at <= utc_now())
                )
                await session.commit()
        except STORE_ERRORS as e:
            logger.error("Cache sweep failed", error=str(e))
            return 0

        count = result.rowcount or 0
        if count:
            logger.info("Swept expired cache entries", count=count)
        return count

    async def clear(self) -> int:
        """Delete every entry."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(AIRequestCache))
                await session.commit()
        except STORE_ERRORS as e:
            logger.error("Cache clear failed", error=str(e))
            return 0

        count = result.rowcount or 0
        logger.info("Cleared cache", count=count)
        return count

    async def stats(self) -> CacheStats:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(
                        func.count(AIRequestCache.id).label("total_entries"),
                        func.sum(AIRequestCache.hit_count).label("total_hits"),
                        func.sum(func.length(AIRequestCache.response_content)).label("size"),
                        func.min(AIRequestCache.created_at).label("oldest"),
                        func.max(AIRequestCache.created_at).label("newest"),
                    )
                )
                row = result.one()
        except STORE_ERRORS as e:
            logger.error("Cache stats failed", error=str(e))
            return CacheStats()

        entries = row.total_entries or 0
        hits = int(row.total_hits or 0)
        # Each entry was a miss once, so hits / (hits + entries) is the hit rate
        hit_rate = hits / (hits + entries) * 100 if entries else 0.0

        return CacheStats(
            total_entries=entries,
            total_hits=hits,
            hit_rate=hit_rate,
            size_bytes=int(row.size or 0),
            oldest_entry=ensure_utc(row.oldest) if row.oldest else None,
            newest_entry=ensure_utc(row.newest) if row.newest else None,
        )
