"""Central enum definitions for roles, statuses and categories.

Values are persisted and embedded in tokens; never rename a value silently.
"""
from __future__ import annotations
from enum import Enum
from typing import Optional


class Role(str, Enum):
    ADMIN = 'admin'
    WORKER = 'worker'
    PAINT = 'paint'
    PAINT_LEAD = 'paint_lead'
    WORKER_LEAD = 'worker_lead'
    SALES = 'sales'

    @property
    def is_lead(self) -> bool:
        return self in (Role.PAINT_LEAD, Role.WORKER_LEAD)

    @property
    def is_floor_worker(self) -> bool:
        # Technician accounts that act only on their own items
        return self in (Role.WORKER, Role.PAINT)

    @classmethod
    def parse(cls, value) -> Optional['Role']:
        try:
            return cls(value)
        except ValueError:
            return None


class ItemStatus(str, Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


class RepairType(str, Enum):
    MECHANICAL = 'sua_chua'
    PAINT = 'dong_son'


class WorkerType(str, Enum):
    REPAIR = 'repair'
    PAINT = 'paint'


class ImageType(str, Enum):
    START = 'start'
    COMPLETE = 'complete'


class EngagedBy(str, Enum):
    START = 'start'
    PRIORITY = 'priority'


# Which worker type may work on which item category
WORKER_TYPE_FOR_REPAIR_TYPE = {
    RepairType.MECHANICAL.value: WorkerType.REPAIR.value,
    RepairType.PAINT.value: WorkerType.PAINT.value,
}

# Category a lead role manages
LEAD_REPAIR_TYPE = {
    Role.PAINT_LEAD: RepairType.PAINT.value,
    Role.WORKER_LEAD: RepairType.MECHANICAL.value,
}

