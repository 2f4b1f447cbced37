from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Enum
from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField  # Renombrar para evitar conflictos
from typing import Optional, Dict, Set
from datetime import datetime
from uuid import uuid4

from .columns import UTCDateTime
import enum


class TripStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


# Transiciones permitidas; completed y cancelled son terminales
TRIP_TRANSITIONS: Dict[TripStatus, Set[TripStatus]] = {
    TripStatus.ACTIVE: {TripStatus.COMPLETED, TripStatus.CANCELLED},
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED: set(),
}


def can_transition(current: TripStatus, target: TripStatus) -> bool:
    return target in TRIP_TRANSITIONS.get(TripStatus(current), set())


class Trip(SQLModel, table=True):
    __tablename__ = "trips"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    # Referencia débil: sin foreign_key para que borrar un cab no falle ni borre viajes
    cab_id: str = Field(index=True, max_length=64)
    pickup_location: str = Field(max_length=255)
    destination: str = Field(max_length=255)
    fare: Optional[float] = Field(default=None)
    distance: Optional[float] = Field(default=None)
    duration: Optional[float] = Field(default=None)
    status: TripStatus = Field(
        default=TripStatus.ACTIVE,
        sa_column=Column(Enum(TripStatus), nullable=False, index=True)
    )
    payment_status: PaymentStatus = Field(
        default=PaymentStatus.PENDING,
        sa_column=Column(Enum(PaymentStatus), nullable=False)
    )
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(
        sa_column=Column(UTCDateTime, nullable=False, index=True))
    completed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(UTCDateTime, nullable=True))
    updated_at: datetime = Field(
        sa_column=Column(UTCDateTime, nullable=False))


class TripCreate(BaseModel):
    # status y payment_status se fuerzan a active/pending al crear
    cab_id: str = PydanticField(..., min_length=1)
    pickup_location: str = PydanticField(..., min_length=1, max_length=255)
    destination: str = PydanticField(..., min_length=1, max_length=255)
    fare: Optional[float] = PydanticField(default=None, ge=0)
    distance: Optional[float] = PydanticField(default=None, ge=0)
    duration: Optional[float] = PydanticField(default=None, ge=0)
    notes: Optional[str] = PydanticField(default=None, max_length=500)


class TripUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cab_id: Optional[str] = PydanticField(default=None, min_length=1)
    pickup_location: Optional[str] = PydanticField(
        default=None, min_length=1, max_length=255)
    destination: Optional[str] = PydanticField(
        default=None, min_length=1, max_length=255)
    fare: Optional[float] = PydanticField(default=None, ge=0)
    distance: Optional[float] = PydanticField(default=None, ge=0)
    duration: Optional[float] = PydanticField(default=None, ge=0)
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = PydanticField(default=None, max_length=500)


class TripComplete(BaseModel):
    """Datos finales del viaje; sobrescriben los valores registrados"""
    model_config = ConfigDict(extra="forbid")

    fare: Optional[float] = PydanticField(default=None, ge=0)
    distance: Optional[float] = PydanticField(default=None, ge=0)
    duration: Optional[float] = PydanticField(default=None, ge=0)
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = PydanticField(default=None, max_length=500)


class TripRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cab_id: str
    pickup_location: str
    destination: str
    fare: Optional[float] = None
    distance: Optional[float] = None
    duration: Optional[float] = None
    status: TripStatus
    payment_status: PaymentStatus
    notes: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    updated_at: datetime
