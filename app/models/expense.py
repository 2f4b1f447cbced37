from sqlmodel import SQLModel, Field
from sqlalchemy import Column
from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField  # Renombrar para evitar conflictos
from typing import Optional
from datetime import datetime, date as date_type
from uuid import uuid4

from .columns import UTCDateTime
import enum


class ExpenseCategory(str, enum.Enum):
    FUEL = "fuel"
    MAINTENANCE = "maintenance"
    INSURANCE = "insurance"
    OTHER = "other"


class Expense(SQLModel, table=True):
    __tablename__ = "expenses"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    description: str = Field(max_length=255)
    # Se guarda como texto: las estadísticas agrupan por la categoría literal
    category: str = Field(max_length=50, index=True)
    amount: float = Field(default=0)
    date: date_type = Field(index=True)
    # Referencia débil al cab, opcional
    cab_id: Optional[str] = Field(default=None, index=True, max_length=64)
    receipt_number: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(
        sa_column=Column(UTCDateTime, nullable=False, index=True))
    updated_at: datetime = Field(
        sa_column=Column(UTCDateTime, nullable=False))


class ExpenseCreate(BaseModel):
    description: str = PydanticField(..., min_length=1, max_length=255)
    category: ExpenseCategory
    amount: float = PydanticField(..., ge=0)
    date: date_type
    cab_id: Optional[str] = PydanticField(default=None, min_length=1)
    receipt_number: Optional[str] = PydanticField(default=None, max_length=100)
    notes: Optional[str] = PydanticField(default=None, max_length=500)


class ExpenseUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = PydanticField(
        default=None, min_length=1, max_length=255)
    category: Optional[ExpenseCategory] = None
    amount: Optional[float] = PydanticField(default=None, ge=0)
    date: Optional[date_type] = None
    cab_id: Optional[str] = PydanticField(default=None, min_length=1)
    receipt_number: Optional[str] = PydanticField(default=None, max_length=100)
    notes: Optional[str] = PydanticField(default=None, max_length=500)


class ExpenseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    description: str
    category: str
    amount: float
    date: date_type
    cab_id: Optional[str] = None
    receipt_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
