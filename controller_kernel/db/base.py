"""
Module: controller_kernel.db.base
Responsibility: Declarative base for the ORM tables that store applied
    budget projections.  Fixes the column types every model shares and adds
    the who/when columns accepted projections are audited by.
Architecture position: Kernel > DB.  Imported by ORM models only; MUST NOT
    import from engines, modules or config.

Invariants enforced:
    - Primary keys are uuid4 values (native UUID on PostgreSQL, CHAR(32)
      elsewhere).
    - Decimal columns are Numeric(38, 9); monetary amounts never touch float.
    - Every tracked row records created_by; updated_by is set on rewrite.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Numeric, String, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ACTOR_LENGTH = 100


class Base(DeclarativeBase):
    """Declarative base: uuid4 ``id`` plus the shared annotation type map."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        uuid.UUID: Uuid(),
    }

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


class TrackedBase(Base):
    """
    Abstract base for rows a controller creates and may later overwrite.

    ``created_at`` / ``updated_at`` are stamped by the database;
    ``created_by`` / ``updated_by`` carry the acting user passed to the
    service.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(),
    )
    created_by: Mapped[str] = mapped_column(String(ACTOR_LENGTH))
    updated_by: Mapped[str | None] = mapped_column(String(ACTOR_LENGTH))
