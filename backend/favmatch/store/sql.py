"""SQLAlchemy-backed document store (PostgreSQL in production, SQLite locally).

Documents live in `documents` with a mapper-managed version column, so a
concurrent UPDATE surfaces as StaleDataError. Set members are single rows
inserted with ON CONFLICT DO NOTHING and removed with a plain DELETE.
"""

import copy
import logging
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from favmatch.database import build_sessionmaker
from favmatch.errors import ContentionError, StoreError
from favmatch.models.tables import Document, SetMember
from favmatch.store.base import DataStore, DocumentMutation, Mutation, SetMutation, WriteResult

logger = logging.getLogger(__name__)


class SqlDataStore(DataStore):
    """DataStore on top of an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine, sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None):
        self.engine = engine
        self._sessionmaker = sessionmaker or build_sessionmaker(engine)
        self._dialect = engine.dialect.name

    async def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            async with self._sessionmaker() as session:
                row = await session.get(Document, (collection, doc_id))
                return copy.deepcopy(row.data) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {e}") from e

    async def get_set_members(self, collection: str, doc_id: str, field: str) -> set[str]:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(SetMember.value).where(
                        SetMember.collection == collection,
                        SetMember.doc_id == doc_id,
                        SetMember.field == field,
                    )
                )
                return set(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {collection}/{doc_id}.{field}: {e}") from e

    async def list_document_ids(self, collection: str) -> list[str]:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(Document.doc_id)
                    .where(Document.collection == collection)
                    .order_by(Document.doc_id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list {collection}: {e}") from e

    async def transactional_update(self, records: Sequence[Mutation]) -> WriteResult:
        result: WriteResult = {}
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    rows: dict[tuple[str, str], Optional[Document]] = {}
                    for rec in records:
                        if isinstance(rec, DocumentMutation):
                            await self._apply_document(session, rec, rows, result)
                        else:
                            await self._apply_set(session, rec)
        except (StaleDataError, IntegrityError) as e:
            logger.debug("Transaction conflict: %s", e)
            raise ContentionError(str(e)) from e
        except SQLAlchemyError as e:
            raise StoreError(f"Transaction failed: {e}") from e
        return result

    async def close(self) -> None:
        await self.engine.dispose()

    # ── Internal ─────────────────────────────────────────────────

    async def _apply_document(
        self,
        session: AsyncSession,
        rec: DocumentMutation,
        rows: dict[tuple[str, str], Optional[Document]],
        result: WriteResult,
    ) -> None:
        key = (rec.collection, rec.doc_id)
        if key not in rows:
            rows[key] = await session.get(Document, key)
            result[key] = None
        row = rows[key]

        new = rec.fn(copy.deepcopy(row.data) if row else None)
        if new is None:
            return

        if row is None:
            row = Document(collection=rec.collection, doc_id=rec.doc_id, data=new)
            session.add(row)
            rows[key] = row
        else:
            row.data = new
        result[key] = copy.deepcopy(new)

    async def _apply_set(self, session: AsyncSession, rec: SetMutation) -> None:
        where = (
            SetMember.collection == rec.collection,
            SetMember.doc_id == rec.doc_id,
            SetMember.field == rec.field,
            SetMember.value == rec.value,
        )
        if rec.remove:
            await session.execute(delete(SetMember).where(*where))
            return

        values = {
            "collection": rec.collection,
            "doc_id": rec.doc_id,
            "field": rec.field,
            "value": rec.value,
        }
        if self._dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
            await session.execute(insert(SetMember).values(**values).on_conflict_do_nothing())
        elif self._dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
            await session.execute(insert(SetMember).values(**values).on_conflict_do_nothing())
        else:
            existing = await session.execute(select(SetMember.value).where(*where))
            if existing.first() is None:
                session.add(SetMember(**values))
