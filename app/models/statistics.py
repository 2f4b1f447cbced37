from pydantic import BaseModel, Field
from typing import Dict, Optional
from datetime import date


class TripStatistics(BaseModel):
    total_trips: int = 0
    total_earnings: float = 0
    total_distance: float = 0
    average_fare: float = 0
    completed_trips: int = 0
    cancelled_trips: int = 0
    pending_trips: int = 0


class ExpenseStatistics(BaseModel):
    total_expenses: float = 0
    total_fuel: float = 0
    total_maintenance: float = 0
    total_insurance: float = 0
    total_other: float = 0
    average_expense: float = 0
    expense_count: int = 0
    category_breakdown: Dict[str, float] = Field(default_factory=dict)


class ReportStatistics(BaseModel):
    start_date: date
    end_date: date
    cab_id: Optional[str] = None
    trips: TripStatistics
    expenses: ExpenseStatistics
    net_profit: float = Field(..., description="total_earnings - total_expenses")
    completion_rate: float = Field(
        ..., description="Porcentaje de viajes completados en el periodo")
    profit_margin: float = Field(
        0, description="net_profit / total_earnings * 100; 0 sin ganancias")
    average_revenue_per_trip: float = Field(
        0, description="total_earnings / total_trips; 0 sin viajes")


class DashboardSummary(BaseModel):
    day: date
    total_cabs: int = 0
    active_cabs: int = 0
    today_trips: int = 0
    active_trips: int = 0
    today_earnings: float = 0
    today_expenses: float = 0
    net_profit: float = 0
