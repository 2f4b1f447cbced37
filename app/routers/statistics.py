from fastapi import APIRouter, Query
from typing import Optional
from datetime import date

from app.core.config import settings
from app.core.db import StoreDep, LiveViewDep
from app.core.errors import ValidationError
from app.models.statistics import (
    DashboardSummary, ExpenseStatistics, ReportStatistics, TripStatistics
)
from app.services.statistics_service import StatisticsService

router = APIRouter(prefix="/statistics", tags=["statistics"])


def _require_window(start_date: Optional[date], end_date: Optional[date]):
    if not start_date or not end_date:
        raise ValidationError("start_date y end_date son requeridos")
    if start_date > end_date:
        raise ValidationError("start_date debe ser anterior o igual a end_date")


@router.get("/trips", response_model=TripStatistics)
async def get_trip_statistics(
    store: StoreDep,
    live_view: LiveViewDep,
    start_date: date = Query(..., description="Fecha de inicio (YYYY-MM-DD)"),
    end_date: date = Query(..., description="Fecha de fin (YYYY-MM-DD)"),
    cab_id: Optional[str] = Query(None, description="ID del cab para filtrar"),
):
    _require_window(start_date, end_date)
    service = StatisticsService(store, live_view)
    return await service.get_trip_statistics(start_date, end_date, cab_id)


@router.get("/expenses", response_model=ExpenseStatistics)
async def get_expense_statistics(
    store: StoreDep,
    live_view: LiveViewDep,
    start_date: date = Query(..., description="Fecha de inicio (YYYY-MM-DD)"),
    end_date: date = Query(..., description="Fecha de fin (YYYY-MM-DD)"),
    cab_id: Optional[str] = Query(None, description="ID del cab para filtrar"),
):
    _require_window(start_date, end_date)
    service = StatisticsService(store, live_view)
    return await service.get_expense_statistics(start_date, end_date, cab_id)


@router.get("/report", response_model=ReportStatistics)
async def get_report(
    store: StoreDep,
    live_view: LiveViewDep,
    range_key: Optional[str] = Query(
        None, alias="range", description="Rango predefinido: 7d, 30d o 90d"),
    start_date: Optional[date] = Query(None, description="Fecha de inicio (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Fecha de fin (YYYY-MM-DD)"),
    cab_id: Optional[str] = Query(None, description="ID del cab para filtrar"),
):
    """
    Reporte de ganancias, gastos y utilidad neta.

    - **`range`**: rango predefinido; se ignora si se envían `start_date` y `end_date`.
    - **`cab_id`**: limita el reporte a un cab.
    """
    service = StatisticsService(store, live_view)
    if start_date or end_date:
        _require_window(start_date, end_date)
        return await service.get_report(start_date, end_date, cab_id)
    return await service.get_report_for_range(range_key or settings.DEFAULT_REPORT_RANGE, cab_id)


@router.get("/dashboard", response_model=DashboardSummary)
async def get_dashboard_summary(store: StoreDep, live_view: LiveViewDep):
    """Resumen del día: flota, viajes, ganancias, gastos y utilidad"""
    service = StatisticsService(store, live_view)
    return await service.get_dashboard_summary()
