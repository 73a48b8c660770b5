"""
ResourceOwnerRegistry: the collections whose creator attribution moves to the
team owner when a member exits.
"""
from typing import Iterator, List, Optional, Protocol, Type

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core import config
from teamaccess.features.resources.models import (
    App,
    AppVersion,
    Dataset,
    DatasetCollection,
    DatasetData,
    Chat,
    ChatItem,
    McpKey,
    UsageRecord,
    OperationLog,
)
from teamaccess.utils import get_logger


log = get_logger(__name__)


class OwnedCollection(Protocol):
    """
    One independently stored collection.

    ``reassign_owner`` must be idempotent and must return 0 when nothing matches.
    """
    name: str

    async def reassign_owner(self, db: AsyncSession, team_id: str, from_member_id: str, to_member_id: str) -> int:
        ...


class SqlOwnedCollection:
    """A table with ``team_id`` and ``tmb_id`` columns, reassigned in batches."""

    def __init__(self, name: str, model: Type, chunk_size: Optional[int] = None):
        self.name = name
        self.model = model
        self.chunk_size = chunk_size or config.REASSIGN_CHUNK_SIZE

    async def reassign_owner(self, db: AsyncSession, team_id: str, from_member_id: str, to_member_id: str) -> int:
        if from_member_id == to_member_id:
            return 0

        model = self.model
        total = 0
        while True:
            result = await db.execute(
                select(model.id)
                .where(and_(model.team_id == team_id, model.tmb_id == from_member_id))
                .limit(self.chunk_size)
            )
            ids = list(result.scalars().all())
            if not ids:
                break

            updated = await db.execute(
                update(model)
                .where(and_(model.id.in_(ids), model.tmb_id == from_member_id))
                .values(tmb_id=to_member_id)
                .execution_options(synchronize_session=False)
            )
            total += updated.rowcount or 0
            log.debug(f"{self.name}: moved batch of {len(ids)} rows from {from_member_id} to {to_member_id}")

            if len(ids) < self.chunk_size:
                break

        return total

    def __repr__(self) -> str:
        return f"<SqlOwnedCollection(name={self.name!r}, table={self.model.__tablename__})>"


class ResourceOwnerRegistry:
    """Ordered set of collections; order is the order the exit steps run in."""

    def __init__(self, collections: Optional[List[OwnedCollection]] = None):
        self._collections: List[OwnedCollection] = []
        for collection in collections or []:
            self.register(collection)

    def register(self, collection: OwnedCollection) -> None:
        if any(existing.name == collection.name for existing in self._collections):
            raise ValueError(f"Collection {collection.name!r} is already registered")
        self._collections.append(collection)

    def __iter__(self) -> Iterator[OwnedCollection]:
        return iter(self._collections)

    def __len__(self) -> int:
        return len(self._collections)

    @property
    def names(self) -> List[str]:
        return [collection.name for collection in self._collections]


def default_registry(chunk_size: Optional[int] = None) -> ResourceOwnerRegistry:
    return ResourceOwnerRegistry([
        SqlOwnedCollection("apps", App, chunk_size),
        SqlOwnedCollection("datasets", Dataset, chunk_size),
        SqlOwnedCollection("dataset_collections", DatasetCollection, chunk_size),
        SqlOwnedCollection("dataset_data", DatasetData, chunk_size),
        SqlOwnedCollection("app_versions", AppVersion, chunk_size),
        SqlOwnedCollection("mcp_keys", McpKey, chunk_size),
        SqlOwnedCollection("chat_items", ChatItem, chunk_size),
        SqlOwnedCollection("chats", Chat, chunk_size),
        SqlOwnedCollection("usage_records", UsageRecord, chunk_size),
        SqlOwnedCollection("operation_logs", OperationLog, chunk_size),
    ])
