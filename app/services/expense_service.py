from typing import Any, Callable, Dict, List, Optional

from app.core.config import settings
from app.models.expense import Expense, ExpenseCategory, ExpenseCreate, ExpenseUpdate
from app.services.record_service import RecordService


class ExpenseService(RecordService):
    collection = "expenses"
    create_schema = ExpenseCreate
    update_schema = ExpenseUpdate
    required_fields = frozenset({"description", "category", "amount", "date"})

    def __init__(self, store, live_view, report_date_field: Optional[str] = None):
        super().__init__(store, live_view)
        # Campo de fecha para reportes: "date" (día contable) o "created_at"
        self.report_date_field = report_date_field or settings.EXPENSE_REPORT_DATE_FIELD

    def _normalize(self, values: Dict[str, Any]) -> Dict[str, Any]:
        # La columna es texto; se guarda el valor literal de la categoría
        if isinstance(values.get("category"), ExpenseCategory):
            values["category"] = values["category"].value
        return values

    async def get_expenses_by_date_range(self, start, end, cab_id: Optional[str] = None) -> List[Expense]:
        return await self.query_by_range(self.report_date_field, start, end, {"cab_id": cab_id})

    async def get_expenses_by_category(self, category: str, start, end, cab_id: Optional[str] = None) -> List[Expense]:
        if isinstance(category, ExpenseCategory):
            category = category.value
        return await self.query_by_range(
            self.report_date_field, start, end, {"category": category, "cab_id": cab_id})

    async def get_fuel_expenses(self, start, end, cab_id: Optional[str] = None) -> List[Expense]:
        return await self.get_expenses_by_category(ExpenseCategory.FUEL, start, end, cab_id)

    async def get_maintenance_expenses(self, start, end, cab_id: Optional[str] = None) -> List[Expense]:
        return await self.get_expenses_by_category(ExpenseCategory.MAINTENANCE, start, end, cab_id)

    async def subscribe_to_expenses_by_date_range(self, start, end, callback: Callable) -> Callable[[], None]:
        return await self.subscribe_by_range(self.report_date_field, start, end, callback)
