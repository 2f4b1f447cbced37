from fastapi import APIRouter, Query, status
from typing import List, Optional
from datetime import date

from app.core.db import StoreDep, LiveViewDep
from app.core.errors import NotFoundError
from app.models.expense import ExpenseCategory, ExpenseCreate, ExpenseRead, ExpenseUpdate
from app.services.expense_service import ExpenseService

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.get("/", response_model=List[ExpenseRead])
async def list_expenses(
    store: StoreDep,
    live_view: LiveViewDep,
    start_date: Optional[date] = Query(None, description="Fecha de inicio (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Fecha de fin (YYYY-MM-DD)"),
    cab_id: Optional[str] = Query(None, description="ID del cab para filtrar"),
    category: Optional[ExpenseCategory] = Query(None, description="Categoría del gasto"),
):
    service = ExpenseService(store, live_view)
    if category:
        return await service.get_expenses_by_category(category, start_date, end_date, cab_id)
    if start_date or end_date or cab_id:
        return await service.get_expenses_by_date_range(start_date, end_date, cab_id)
    return await service.get_all()


@router.get("/{expense_id}", response_model=ExpenseRead)
async def get_expense(expense_id: str, store: StoreDep, live_view: LiveViewDep):
    service = ExpenseService(store, live_view)
    expense = await service.get_by_id(expense_id)
    if not expense:
        raise NotFoundError("expenses", expense_id)
    return expense


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_expense(data: ExpenseCreate, store: StoreDep, live_view: LiveViewDep):
    service = ExpenseService(store, live_view)
    expense_id = await service.create(data)
    return {"id": expense_id}


@router.patch("/{expense_id}", response_model=ExpenseRead)
async def update_expense(expense_id: str, data: ExpenseUpdate, store: StoreDep, live_view: LiveViewDep):
    service = ExpenseService(store, live_view)
    return await service.update(expense_id, data)


@router.delete("/{expense_id}")
async def delete_expense(expense_id: str, store: StoreDep, live_view: LiveViewDep):
    service = ExpenseService(store, live_view)
    deleted = await service.delete(expense_id)
    return {"deleted": deleted}
