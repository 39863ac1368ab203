"""Normalized-name uniqueness index for canonical registries."""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, CreatedAtMixin, IdMixin


class EntityNameKey(Base, IdMixin, CreatedAtMixin):
    """Maps one normalized spelling to exactly one canonical entity of a kind."""

    __tablename__ = "entity_name_keys"
    __table_args__ = (UniqueConstraint("entity_kind", "name_key", name="uq_entity_name_keys_kind_key"),)

    entity_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
