from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal, Dict, Any, Union

PhotoStage = Literal["on_site", "chemistry", "before", "after"]
Number = Union[int, float, str]


class CreateOrder(BaseModel):
    # keys mirror the dispatcher form
    manager: Optional[str] = None
    customerName: str
    customerPhone: str
    customerAddress: str
    customerFlat: Optional[str] = None
    area: Optional[Number] = None
    cleaningType: str
    difficulty: Optional[Number] = None
    pets: Optional[str] = None
    equipment: Optional[str] = None
    chemistry: Optional[str] = None
    worksDescription: Optional[str] = None
    orderTotal: Optional[Number] = None
    masterPay: Optional[Number] = None
    orderDate: str = Field(..., description="YYYY-MM-DD")
    orderTime: str = Field(..., description="HH:MM")


class CreateOrderOut(BaseModel):
    success: bool = True
    orderId: str
    broadcastLink: Optional[str] = None


class TakeOrder(BaseModel):
    # Telegram user ids arrive as numbers
    model_config = ConfigDict(coerce_numbers_to_str=True)

    orderId: str
    masterId: str
    masterName: Optional[str] = ""


class TakeOrderOut(BaseModel):
    success: bool
    outcome: str
    orderId: str
    notified: bool = False


class UploadPhoto(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    orderId: str
    type: PhotoStage
    photoUrl: str
    masterId: Optional[str] = None


class UploadPhotoOut(BaseModel):
    success: bool = True
    orderId: str
    status: str


class ContactUpdate(BaseModel):
    customerPhone: Optional[str] = None
    customerAddress: Optional[str] = None
    customerFlat: Optional[str] = None


class StatsOut(BaseModel):
    pending: int = 0
    taken: int = 0
    completed: int = 0
    total: int = 0


class OrderOut(BaseModel):
    id: str
    status: str
    region: str
    creator: str
    customer: Dict[str, Any]
    job: Dict[str, Any]
    schedule: Dict[str, str]
    assignedWorker: Optional[Dict[str, str]] = None
    photos: Dict[str, str] = Field(default_factory=dict)
    broadcastRef: Optional[Dict[str, Any]] = None
    createdAt: str
    takenAt: Optional[str] = None
    completedAt: Optional[str] = None