"""
Tests unitarios para el IngestionLockManager.
"""
from __future__ import annotations

import asyncio

import pytest

from content_sync.infrastructure.ingestion.ingestion_lock import (
    IngestionLockManager,
    advisory_lock_key,
)
from content_sync.shared.exceptions.domain import IngestionBusyError


class TestIngestionLockManager:
    @pytest.mark.asyncio
    async def test_lock_is_released_after_block(self) -> None:
        locks = IngestionLockManager(timeout=0.1)

        async with locks.lock("posts"):
            assert locks.is_locked("posts") is True

        assert locks.is_locked("posts") is False

    @pytest.mark.asyncio
    async def test_same_kind_is_rejected_while_held(self) -> None:
        locks = IngestionLockManager(timeout=0.1)

        async with locks.lock("posts"):
            with pytest.raises(IngestionBusyError) as exc_info:
                async with locks.lock("posts"):
                    pass

        assert exc_info.value.kind == "posts"
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_non_blocking_attempt(self) -> None:
        locks = IngestionLockManager()

        async with locks.lock("tags"):
            with pytest.raises(IngestionBusyError):
                async with locks.lock("tags", timeout=0):
                    pass

    @pytest.mark.asyncio
    async def test_distinct_kinds_do_not_block(self) -> None:
        locks = IngestionLockManager(timeout=0.1)

        async with locks.lock("posts"):
            async with locks.lock("categories"):
                assert locks.is_locked("categories") is True

    @pytest.mark.asyncio
    async def test_waiter_gets_lock_after_release(self) -> None:
        locks = IngestionLockManager(timeout=2.0)
        order = []

        async def first():
            async with locks.lock("posts"):
                order.append("first")
                await asyncio.sleep(0.05)

        async def second():
            await asyncio.sleep(0.01)
            async with locks.lock("posts"):
                order.append("second")

        await asyncio.gather(first(), second())

        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self) -> None:
        locks = IngestionLockManager(timeout=0.1)

        with pytest.raises(RuntimeError):
            async with locks.lock("posts"):
                raise RuntimeError("fallo")

        assert locks.is_locked("posts") is False


def test_advisory_key_is_stable_per_kind() -> None:
    assert advisory_lock_key("posts") == advisory_lock_key("posts")
    assert advisory_lock_key("posts") != advisory_lock_key("tags")
