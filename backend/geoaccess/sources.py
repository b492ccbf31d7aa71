"""SQL-backed profile source.

The live subscription is a polling ``asyncio.Task`` per subscriber. It emits
the current document once, then again whenever the row's ``version`` moves.
Writes are JSONB merges (``document || fields``) so collaborating services
that write other keys are never clobbered. The merge is shallow: a nested
object such as ``employeeInfo`` is replaced as a whole.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geoaccess.config import settings
from geoaccess.models.profile import ProfileDocument
from geoaccess.session import ErrorCallback, ProfileCallback, Unsubscribe

logger = logging.getLogger(__name__)

_MISSING = object()


class SqlProfileSource:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        poll_seconds: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.poll_seconds = settings.PROFILE_POLL_SECONDS if poll_seconds is None else poll_seconds
        self._tasks: set[asyncio.Task] = set()

    async def _read(self, uid: str) -> tuple[int, dict[str, Any]] | None:
        async with self._session_factory() as db:
            stmt = select(ProfileDocument.version, ProfileDocument.document).where(
                ProfileDocument.uid == uid
            )
            row = (await db.execute(stmt)).one_or_none()
        if row is None:
            return None
        return row.version, dict(row.document or {})

    async def fetch(self, uid: str) -> dict[str, Any] | None:
        found = await self._read(uid)
        return found[1] if found else None

    async def update_fields(self, uid: str, fields: Mapping[str, Any]) -> None:
        payload = dict(fields)
        stmt = insert(ProfileDocument).values(uid=uid, document=payload)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ProfileDocument.uid],
            set_={
                "document": ProfileDocument.document.op("||")(stmt.excluded.document),
                "version": ProfileDocument.version + 1,
                "updated_at": func.now(),
            },
        )
        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()
        logger.info(f"[profiles] {uid}: merged fields {sorted(payload)}")

    def subscribe(
        self, uid: str, on_next: ProfileCallback, on_error: ErrorCallback
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(
            self._poll(uid, on_next, on_error), name=f"profile-poll:{uid}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def _unsubscribe() -> None:
            task.cancel()

        return _unsubscribe

    async def _poll(self, uid: str, on_next: ProfileCallback, on_error: ErrorCallback) -> None:
        last_version: object = _MISSING
        while True:
            try:
                found = await self._read(uid)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[profiles] {uid}: poll failed: {e}")
                last_version = _MISSING
                on_error(e)
            else:
                version = found[0] if found else None
                if version != last_version:
                    last_version = version
                    on_next(found[1] if found else None)
            await asyncio.sleep(self.poll_seconds)

    async def aclose(self) -> None:
        """Cancel every running poller."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
