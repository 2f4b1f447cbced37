from datetime import date, timedelta
from typing import Any, Iterable, Optional, Tuple
from collections.abc import Mapping

from app.models.cab import CabStatus
from app.models.expense import ExpenseCategory
from app.models.statistics import (
    DashboardSummary, ExpenseStatistics, ReportStatistics, TripStatistics
)
from app.models.trip import TripStatus
from app.services.cab_service import CabService
from app.services.expense_service import ExpenseService
from app.services.trip_service import TripService

REPORT_RANGES = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_RANGE = "7d"

# Categorías con acumulado propio; el resto va a total_other
_NAMED_BUCKETS = {
    ExpenseCategory.FUEL.value: "total_fuel",
    ExpenseCategory.MAINTENANCE.value: "total_maintenance",
    ExpenseCategory.INSURANCE.value: "total_insurance",
}


def _read(record: Any, field: str):
    if isinstance(record, Mapping):
        return record.get(field)
    return getattr(record, field, None)


def _as_text(value) -> Optional[str]:
    if value is None:
        return None
    return value.value if hasattr(value, "value") else str(value)


def compute_trip_statistics(trips: Iterable[Any]) -> TripStatistics:
    """
    Reduce un conjunto de viajes a estadísticas.

    Solo los viajes completados suman a ganancias y distancia; los cancelados
    se cuentan aparte y cualquier otro estado cuenta como pendiente.
    Nunca falla con una lista vacía.
    """
    trips = list(trips)
    stats = TripStatistics(total_trips=len(trips))
    for trip in trips:
        status = _as_text(_read(trip, "status"))
        if status == TripStatus.COMPLETED.value:
            stats.completed_trips += 1
            stats.total_earnings += _read(trip, "fare") or 0
            stats.total_distance += _read(trip, "distance") or 0
        elif status == TripStatus.CANCELLED.value:
            stats.cancelled_trips += 1
        else:
            stats.pending_trips += 1

    if stats.completed_trips > 0:
        stats.average_fare = stats.total_earnings / stats.completed_trips
    return stats


def compute_expense_statistics(expenses: Iterable[Any]) -> ExpenseStatistics:
    """
    Reduce un conjunto de gastos a totales por categoría.

    `category_breakdown` usa la categoría literal de cada gasto, sin limitarse
    a las cuatro categorías conocidas.
    """
    expenses = list(expenses)
    stats = ExpenseStatistics(expense_count=len(expenses))
    breakdown = {}
    for expense in expenses:
        amount = _read(expense, "amount") or 0
        category = _as_text(_read(expense, "category")) or ExpenseCategory.OTHER.value

        stats.total_expenses += amount
        bucket = _NAMED_BUCKETS.get(category, "total_other")
        setattr(stats, bucket, getattr(stats, bucket) + amount)
        breakdown[category] = breakdown.get(category, 0) + amount

    if stats.expense_count > 0:
        stats.average_expense = stats.total_expenses / stats.expense_count
    stats.category_breakdown = breakdown
    return stats


def report_window(range_key: Optional[str], today: Optional[date] = None) -> Tuple[date, date]:
    """Ventana [hoy - N días, hoy] para los rangos 7d/30d/90d"""
    today = today or date.today()
    days = REPORT_RANGES.get(range_key or DEFAULT_RANGE, REPORT_RANGES[DEFAULT_RANGE])
    return today - timedelta(days=days), today


class StatisticsService:
    def __init__(self, store, live_view):
        self.store = store
        self.cab_service = CabService(store, live_view)
        self.trip_service = TripService(store, live_view)
        self.expense_service = ExpenseService(store, live_view)

    def _today(self) -> date:
        return self.store.now().date()

    async def get_trip_statistics(self, start_date: date, end_date: date, cab_id: Optional[str] = None) -> TripStatistics:
        trips = await self.trip_service.get_trips_by_date_range(start_date, end_date, cab_id)
        return compute_trip_statistics(trips)

    async def get_expense_statistics(self, start_date: date, end_date: date, cab_id: Optional[str] = None) -> ExpenseStatistics:
        expenses = await self.expense_service.get_expenses_by_date_range(start_date, end_date, cab_id)
        return compute_expense_statistics(expenses)

    async def get_report(self, start_date: date, end_date: date, cab_id: Optional[str] = None) -> ReportStatistics:
        """
        Reporte combinado del periodo.

        Args:
            start_date: Fecha de inicio (inclusive)
            end_date: Fecha de fin (inclusive)
            cab_id: ID del cab para filtrar

        Returns:
            Estadísticas de viajes y gastos, utilidad neta y tasa de completados
        """
        trip_stats = await self.get_trip_statistics(start_date, end_date, cab_id)
        expense_stats = await self.get_expense_statistics(start_date, end_date, cab_id)
        net_profit = trip_stats.total_earnings - expense_stats.total_expenses
        completion_rate = average_revenue = profit_margin = 0
        if trip_stats.total_trips > 0:
            completion_rate = trip_stats.completed_trips / trip_stats.total_trips * 100
            average_revenue = trip_stats.total_earnings / trip_stats.total_trips
        if trip_stats.total_earnings > 0:
            profit_margin = net_profit / trip_stats.total_earnings * 100
        return ReportStatistics(
            start_date=start_date,
            end_date=end_date,
            cab_id=cab_id,
            trips=trip_stats,
            expenses=expense_stats,
            net_profit=net_profit,
            completion_rate=round(completion_rate, 2),
            profit_margin=round(profit_margin, 2),
            average_revenue_per_trip=round(average_revenue, 2),
        )

    async def get_report_for_range(self, range_key: Optional[str], cab_id: Optional[str] = None, today: Optional[date] = None) -> ReportStatistics:
        start_date, end_date = report_window(range_key, today or self._today())
        return await self.get_report(start_date, end_date, cab_id)

    async def get_dashboard_summary(self, today: Optional[date] = None) -> DashboardSummary:
        today = today or self._today()
        cabs = await self.cab_service.get_all()
        trip_stats = compute_trip_statistics(
            await self.trip_service.get_today_trips(today))
        expense_stats = compute_expense_statistics(
            await self.expense_service.get_expenses_by_date_range(today, today))

        return DashboardSummary(
            day=today,
            total_cabs=len(cabs),
            active_cabs=sum(1 for cab in cabs if cab.status == CabStatus.ACTIVE),
            today_trips=trip_stats.total_trips,
            active_trips=trip_stats.pending_trips,
            today_earnings=trip_stats.total_earnings,
            today_expenses=expense_stats.total_expenses,
            net_profit=trip_stats.total_earnings - expense_stats.total_expenses,
        )
