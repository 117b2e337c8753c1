from __future__ import annotations
from typing import Optional, List
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime
from garage.models.authz import Base
from garage.constants.roles import ItemStatus
from garage.utils.timeutil import utcnow

class RepairOrder(Base):
    __tablename__ = 'repair_orders'
    # Status constants
    STATUS_PENDING = ItemStatus.PENDING.value
    STATUS_IN_PROGRESS = ItemStatus.IN_PROGRESS.value
    STATUS_COMPLETED = ItemStatus.COMPLETED.value
    ALL_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED)
    # Descriptive fields editable through PUT /repairs/<id>
    EDITABLE_FIELDS = ('code', 'license_plate', 'customer_name', 'vehicle_name', 'received_at', 'expected_return_at', 'notes')
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)
    license_plate: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    customer_name: Mapped[str] = mapped_column(String(120), nullable=False)
    vehicle_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expected_return_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_PENDING, index=True)
    waiting_for_parts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parts_order_start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    parts_expected_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    parts_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items: Mapped[List['RepairItem']] = relationship(
        'RepairItem',
        back_populates='order',
        cascade='all, delete-orphan',
        order_by='RepairItem.order_index',
    )

# Status flow mirrors the items: pending -> in_progress (first item started) -> completed (all top-level items completed)
