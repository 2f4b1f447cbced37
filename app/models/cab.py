from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Enum, JSON
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import Field as PydanticField  # Renombrar para evitar conflictos
from typing import Optional, Dict
from datetime import datetime
from uuid import uuid4

from .columns import UTCDateTime
import enum


class CabStatus(str, enum.Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


class Coordinate(BaseModel):
    lat: float = PydanticField(..., ge=-90, le=90,
                               description="Latitud. Ejemplo: 4.710989")
    lng: float = PydanticField(..., ge=-180, le=180,
                               description="Longitud. Ejemplo: -74.072092")


class Cab(SQLModel, table=True):
    __tablename__ = "cabs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    registration_number: str = Field(max_length=32, index=True, unique=True)
    model: Optional[str] = Field(default=None, max_length=100)
    driver_name: Optional[str] = Field(default=None, max_length=150)
    driver_phone: Optional[str] = Field(default=None, max_length=32)
    year: Optional[int] = Field(default=None)
    color: Optional[str] = Field(default=None, max_length=50)
    status: CabStatus = Field(
        default=CabStatus.ACTIVE,
        sa_column=Column(Enum(CabStatus), nullable=False)
    )
    # Solo se modifican al completar viajes
    total_earnings: float = Field(default=0)
    total_trips: int = Field(default=0)
    current_location: Optional[Dict[str, float]] = Field(
        default=None, sa_column=Column(JSON, nullable=True))
    last_location_update: Optional[datetime] = Field(
        default=None, sa_column=Column(UTCDateTime, nullable=True))
    created_at: datetime = Field(
        sa_column=Column(UTCDateTime, nullable=False, index=True))
    updated_at: datetime = Field(
        sa_column=Column(UTCDateTime, nullable=False))


def _strip_registration(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("registration_number no puede estar vacío")
    return value


class CabCreate(BaseModel):
    # status, contadores y ubicación los asigna el servidor; se ignoran aquí
    registration_number: str = PydanticField(..., max_length=32,
                                             description="Placa del vehículo. Ejemplo: ABC-123")
    model: Optional[str] = PydanticField(default=None, max_length=100)
    driver_name: Optional[str] = PydanticField(default=None, max_length=150)
    driver_phone: Optional[str] = PydanticField(default=None, max_length=32)
    year: Optional[int] = PydanticField(default=None, ge=1900, le=2100)
    color: Optional[str] = PydanticField(default=None, max_length=50)

    @field_validator("registration_number")
    @classmethod
    def registration_not_blank(cls, value: str) -> str:
        return _strip_registration(value)


class CabUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    registration_number: Optional[str] = PydanticField(
        default=None, max_length=32)
    model: Optional[str] = PydanticField(default=None, max_length=100)
    driver_name: Optional[str] = PydanticField(default=None, max_length=150)
    driver_phone: Optional[str] = PydanticField(default=None, max_length=32)
    year: Optional[int] = PydanticField(default=None, ge=1900, le=2100)
    color: Optional[str] = PydanticField(default=None, max_length=50)
    status: Optional[CabStatus] = None

    @field_validator("registration_number")
    @classmethod
    def registration_not_blank(cls, value: Optional[str]) -> Optional[str]:
        return _strip_registration(value)


class CabRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    registration_number: str
    model: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    status: CabStatus
    total_earnings: float
    total_trips: int
    current_location: Optional[Coordinate] = None
    last_location_update: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
