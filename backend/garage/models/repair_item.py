from __future__ import annotations
from typing import Optional, List
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from garage.models.authz import Base
from garage.constants.roles import ItemStatus, RepairType, ImageType
from garage.utils.timeutil import utcnow

class RepairItem(Base):
    __tablename__ = 'repair_items'
    # Status constants
    STATUS_PENDING = ItemStatus.PENDING.value
    STATUS_IN_PROGRESS = ItemStatus.IN_PROGRESS.value
    STATUS_COMPLETED = ItemStatus.COMPLETED.value
    ALL_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED)
    TYPE_MECHANICAL = RepairType.MECHANICAL.value
    TYPE_PAINT = RepairType.PAINT.value
    ALL_REPAIR_TYPES = (TYPE_MECHANICAL, TYPE_PAINT)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_PENDING, index=True)
    repair_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    worker_id: Mapped[Optional[int]] = mapped_column(ForeignKey('repair_workers.id', ondelete='SET NULL'), nullable=True, index=True)
    estimated_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    order = relationship('RepairOrder', back_populates='items')
    children: Mapped[List['RepairItem']] = relationship(
        'RepairItem',
        cascade='all, delete-orphan',
        order_by='RepairItem.order_index',
    )
    images: Mapped[List['RepairItemImage']] = relationship(
        'RepairItemImage', back_populates='item', cascade='all, delete-orphan', order_by='RepairItemImage.captured_at'
    )
    assignments: Mapped[List['RepairItemAssignedWorker']] = relationship(
        'RepairItemAssignedWorker', back_populates='item', cascade='all, delete-orphan', order_by='RepairItemAssignedWorker.assigned_at'
    )
    transfers: Mapped[List['RepairItemTransfer']] = relationship(
        'RepairItemTransfer', back_populates='item', cascade='all, delete-orphan', order_by='RepairItemTransfer.transferred_at'
    )


class RepairItemAssignedWorker(Base):
    __tablename__ = 'repair_item_assigned_workers'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_item_id: Mapped[int] = mapped_column(ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False, index=True)
    worker_id: Mapped[int] = mapped_column(ForeignKey('repair_workers.id', ondelete='CASCADE'), nullable=False, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    estimated_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    priority_marked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    workload_engaged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    workload_engaged_by: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    item = relationship('RepairItem', back_populates='assignments')

    __table_args__ = (UniqueConstraint('repair_item_id', 'worker_id', name='uq_item_worker'),)


class RepairItemTransfer(Base):
    __tablename__ = 'repair_item_transfers'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_item_id: Mapped[int] = mapped_column(ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False, index=True)
    from_worker_id: Mapped[int] = mapped_column(ForeignKey('repair_workers.id'), nullable=False)
    to_worker_id: Mapped[int] = mapped_column(ForeignKey('repair_workers.id'), nullable=False)
    transferred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    item = relationship('RepairItem', back_populates='transfers')


class RepairItemImage(Base):
    __tablename__ = 'repair_item_images'
    TYPE_START = ImageType.START.value
    TYPE_COMPLETE = ImageType.COMPLETE.value
    ALL_TYPES = (TYPE_START, TYPE_COMPLETE)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_item_id: Mapped[int] = mapped_column(ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False, index=True)
    image_type: Mapped[str] = mapped_column(String(16), nullable=False)
    # Opaque payload (usually a data URL); never inspected
    image_data: Mapped[str] = mapped_column(Text, nullable=False)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    item = relationship('RepairItem', back_populates='images')
