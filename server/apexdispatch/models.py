from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional
from zoneinfo import ZoneInfo

# In-memory records owned by OrderStore – not Pydantic models.

OrderStatus = Literal["pending", "taken", "completed"]
PhotoStage = Literal["on_site", "chemistry", "before", "after"]

PENDING: OrderStatus = "pending"
TAKEN: OrderStatus = "taken"
COMPLETED: OrderStatus = "completed"

ORDER_STATUSES = (PENDING, TAKEN, COMPLETED)
PHOTO_STAGES = ("on_site", "chemistry", "before", "after")
COMPLETION_STAGE: PhotoStage = "after"

REQUIRED_FIELDS = (
    "customerName",
    "customerPhone",
    "customerAddress",
    "cleaningType",
    "orderDate",
    "orderTime",
)
CONTACT_FIELDS = ("customerPhone", "customerAddress", "customerFlat")

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMATS = ("%H:%M", "%H:%M:%S")


class ClaimOutcome(str, Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Customer:
    name: str
    phone: str
    address: str
    unit: str = ""


@dataclass(frozen=True)
class JobSpec:
    area: Any = None
    cleaning_type: str = ""
    difficulty: Any = None
    pets: Any = None
    equipment: str = ""
    chemistry: str = ""
    description: str = ""
    total: Any = None
    pay: Any = None


@dataclass(frozen=True)
class Schedule:
    date: str
    time: str

    def at(self, tz: Optional[ZoneInfo] = None) -> datetime:
        """Job start in ``tz`` (naive when no timezone is given)."""
        day = datetime.strptime(self.date, DATE_FORMAT).date()
        for fmt in TIME_FORMATS:
            try:
                clock = datetime.strptime(self.time, fmt).time()
                break
            except ValueError:
                continue
        else:
            raise ValueError(f"Unrecognized time {self.time!r}; use HH:MM")
        return datetime.combine(day, clock, tzinfo=tz)


@dataclass(frozen=True)
class WorkerRef:
    id: str
    name: str = ""


@dataclass(frozen=True)
class MessageRef:
    """Outstanding offer message: where it was posted and how to reach it."""

    chat_id: str
    message_id: int
    link: Optional[str] = None


@dataclass
class Order:
    id: str
    region: str
    creator: str
    customer: Customer
    job: JobSpec
    schedule: Schedule
    created_at: datetime
    status: OrderStatus = PENDING
    assigned_worker: Optional[WorkerRef] = None
    photos: Dict[str, str] = field(default_factory=dict)
    broadcast_ref: Optional[MessageRef] = None
    taken_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        ref = self.broadcast_ref
        worker = self.assigned_worker
        return {
            "id": self.id,
            "status": self.status,
            "region": self.region,
            "creator": self.creator,
            "customer": {
                "name": self.customer.name,
                "phone": self.customer.phone,
                "address": self.customer.address,
                "unit": self.customer.unit,
            },
            "job": {
                "area": self.job.area,
                "cleaningType": self.job.cleaning_type,
                "difficulty": self.job.difficulty,
                "pets": self.job.pets,
                "equipment": self.job.equipment,
                "chemistry": self.job.chemistry,
                "description": self.job.description,
                "total": self.job.total,
                "pay": self.job.pay,
            },
            "schedule": {"date": self.schedule.date, "time": self.schedule.time},
            "assignedWorker": {"id": worker.id, "name": worker.name} if worker else None,
            "photos": dict(self.photos),
            "broadcastRef": (
                {"chatId": ref.chat_id, "messageId": ref.message_id, "link": ref.link} if ref else None
            ),
            "createdAt": _iso(self.created_at),
            "takenAt": _iso(self.taken_at),
            "completedAt": _iso(self.completed_at),
        }


@dataclass
class Worker:
    id: str
    address: str
    name: str = ""
    registered_at: Optional[datetime] = None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def new_order(order_id: str, region: str, request: Mapping[str, Any], created_at: datetime) -> Order:
    """Build a pending order from a dispatcher job request (camelCase keys)."""
    return Order(
        id=order_id,
        region=region,
        creator=_text(request.get("manager")),
        customer=Customer(
            name=_text(request.get("customerName")),
            phone=_text(request.get("customerPhone")),
            address=_text(request.get("customerAddress")),
            unit=_text(request.get("customerFlat")),
        ),
        job=JobSpec(
            area=request.get("area"),
            cleaning_type=_text(request.get("cleaningType")),
            difficulty=request.get("difficulty"),
            pets=request.get("pets"),
            equipment=_text(request.get("equipment")),
            chemistry=_text(request.get("chemistry")),
            description=_text(request.get("worksDescription")),
            total=request.get("orderTotal"),
            pay=request.get("masterPay"),
        ),
        schedule=Schedule(date=_text(request.get("orderDate")), time=_text(request.get("orderTime"))),
        created_at=created_at,
    )
