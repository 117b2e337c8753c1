from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, DateTime, func
from garage.models.authz import Base
from garage.constants.roles import WorkerType

class RepairWorker(Base):
    __tablename__ = 'repair_workers'
    TYPE_REPAIR = WorkerType.REPAIR.value
    TYPE_PAINT = WorkerType.PAINT.value
    ALL_TYPES = (TYPE_REPAIR, TYPE_PAINT)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    worker_type: Mapped[str] = mapped_column(String(16), nullable=False, default=TYPE_REPAIR)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
