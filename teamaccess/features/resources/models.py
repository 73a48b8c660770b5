"""
Owner-attributed resource collections.

Only the attribution columns matter here: every row records the team it
belongs to and the member (``tmb_id``) that created it. When a member exits
the team, ``tmb_id`` is handed over to the team owner.
"""
from sqlalchemy import String, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, declared_attr

from teamaccess.core.database.base import Base, TimestampMixin, generate_ulid


class OwnedResourceMixin(TimestampMixin):
    """Team and creator attribution shared by every owned collection."""

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    @declared_attr
    def team_id(cls) -> Mapped[str]:
        return mapped_column(
            String(26),
            ForeignKey("teams.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )

    @declared_attr
    def tmb_id(cls) -> Mapped[str]:
        # No FK: attribution survives member hard-deletes until reassigned
        return mapped_column(String(26), nullable=False, index=True)


class App(Base, OwnedResourceMixin):
    __tablename__ = "apps"

    name: Mapped[str] = mapped_column(String(255), nullable=False)


class AppVersion(Base, OwnedResourceMixin):
    __tablename__ = "app_versions"

    app_id: Mapped[str] = mapped_column(String(26), ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    version_name: Mapped[str | None] = mapped_column(String(100), nullable=True)


class Dataset(Base, OwnedResourceMixin):
    __tablename__ = "datasets"

    name: Mapped[str] = mapped_column(String(255), nullable=False)


class DatasetCollection(Base, OwnedResourceMixin):
    __tablename__ = "dataset_collections"

    dataset_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class DatasetData(Base, OwnedResourceMixin):
    __tablename__ = "dataset_data"

    collection_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("dataset_collections.id", ondelete="CASCADE"),
        nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")


class Chat(Base, OwnedResourceMixin):
    __tablename__ = "chats"

    app_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)


class ChatItem(Base, OwnedResourceMixin):
    __tablename__ = "chat_items"

    chat_id: Mapped[str] = mapped_column(String(26), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")


class McpKey(Base, OwnedResourceMixin):
    __tablename__ = "mcp_keys"

    name: Mapped[str] = mapped_column(String(255), nullable=False)


class UsageRecord(Base, OwnedResourceMixin):
    __tablename__ = "usage_records"

    app_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class OperationLog(Base, OwnedResourceMixin):
    __tablename__ = "operation_logs"

    event: Mapped[str] = mapped_column(String(100), nullable=False)
