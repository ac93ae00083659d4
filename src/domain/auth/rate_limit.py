"""
Store-backed fixed-window rate limiter.

Counters live in the shared ``rate_limits`` table, so every app instance sees
the same attempt history. Storage failures fail open by default.
"""

import asyncio
import logging
import random
from typing import Callable

from pydantic import BaseModel
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.base.utils.time_utils import now_ms
from src.domain.models.entities.rate_limit import RateLimitEntry

logger = logging.getLogger(__name__)

CLEANUP_PROBABILITY = 0.01
DEFAULT_CLEANUP_MAX_AGE_MS = 60 * 60 * 1000


class RateLimitResult(BaseModel):
    allowed: bool
    remaining: int
    reset_at: int
    # Whole seconds from the check until reset_at, rounded up
    retry_after_seconds: int = 0


def _result(allowed: bool, remaining: int, reset_at: int, now: int) -> RateLimitResult:
    return RateLimitResult(
        allowed=allowed,
        remaining=remaining,
        reset_at=reset_at,
        retry_after_seconds=max(0, -(-(reset_at - now) // 1000)),
    )


class RateLimiter:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        fail_open: bool = True,
        clock: Callable[[], int] = now_ms,
        rng: Callable[[], float] = random.random,
    ):
        self._session_factory = session_factory
        self._fail_open = fail_open
        self._clock = clock
        self._rng = rng
        self._background: set[asyncio.Task] = set()

    async def check(self, key: str, limit: int, window_ms: int) -> RateLimitResult:
        """
        Count one attempt for ``key`` and decide whether it is allowed.

        Args:
            key: Counter identity, e.g. "login:<ip>".
            limit: Attempts allowed per window.
            window_ms: Window length in milliseconds.

        Returns:
            RateLimitResult: allowed flag, attempts left and window reset time (epoch ms).
        """
        now = self._clock()
        try:
            async with self._session_factory() as session:
                try:
                    return await self._check(session, key, limit, window_ms, now)
                except IntegrityError:
                    # Lost a concurrent first insert; the row exists now
                    await session.rollback()
                    return await self._check(session, key, limit, window_ms, now)
        except SQLAlchemyError:
            logger.error("Rate limit check failed for %s", key, exc_info=True)
            if self._fail_open:
                return _result(True, limit, now + window_ms, now)
            return _result(False, 0, now + window_ms, now)

    async def _check(
        self,
        session: AsyncSession,
        key: str,
        limit: int,
        window_ms: int,
        now: int,
    ) -> RateLimitResult:
        entry = await session.get(RateLimitEntry, key, populate_existing=True)

        if entry is None:
            session.add(RateLimitEntry(key=key, count=1, window_start=now))
            await session.commit()
            return _result(True, limit - 1, now + window_ms, now)

        if entry.window_start < now - window_ms:
            entry.count = 1
            entry.window_start = now
            await session.commit()
            return _result(True, limit - 1, now + window_ms, now)

        count = entry.count
        window_start = entry.window_start
        if count >= limit:
            logger.warning("Rate limit exceeded for %s", key)
            return _result(False, 0, window_start + window_ms, now)

        await session.execute(
            update(RateLimitEntry)
            .where(RateLimitEntry.key == key)
            .values(count=RateLimitEntry.count + 1)
        )
        await session.commit()
        return _result(True, limit - count - 1, window_start + window_ms, now)

    async def reset(self, key: str) -> None:
        """Forget all attempts for ``key``, e.g. after a successful login."""
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(RateLimitEntry).where(RateLimitEntry.key == key)
                )
                await session.commit()
        except SQLAlchemyError:
            logger.error("Rate limit reset failed for %s", key, exc_info=True)

    async def cleanup_expired(self, max_age_ms: int = DEFAULT_CLEANUP_MAX_AGE_MS) -> int:
        """Delete entries whose window started more than ``max_age_ms`` ago."""
        cutoff = self._clock() - max_age_ms
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(RateLimitEntry).where(RateLimitEntry.window_start < cutoff)
                )
                await session.commit()
                removed = result.rowcount or 0
        except SQLAlchemyError:
            logger.error("Rate limit cleanup failed", exc_info=True)
            return 0
        if removed:
            logger.info("Removed %d expired rate limit entries", removed)
        return removed

    def maybe_cleanup(self, max_age_ms: int = DEFAULT_CLEANUP_MAX_AGE_MS) -> None:
        """Occasionally sweep expired entries in the background (fire and forget)."""
        if self._rng() >= CLEANUP_PROBABILITY:
            return
        task = asyncio.create_task(self.cleanup_expired(max_age_ms))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
