from fastapi import APIRouter

from expense_api.api.auth import router as auth_router
from expense_api.api.budgets import router as budgets_router
from expense_api.api.expenses import router as expenses_router
from expense_api.api.notifications import router as notifications_router
from expense_api.api.reports import router as reports_router
from expense_api.api.teams import router as teams_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(budgets_router)
api_router.include_router(expenses_router)
api_router.include_router(notifications_router)
api_router.include_router(reports_router)
api_router.include_router(teams_router)
