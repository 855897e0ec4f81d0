from fastapi import APIRouter
from app.routers import attendance, leave, leave_balance, notifications, payroll

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(leave.router, tags=["Leave"])
api_router.include_router(leave_balance.router, tags=["Leave Balance"])
api_router.include_router(attendance.router, tags=["Attendance"])
api_router.include_router(payroll.router, tags=["Payroll"])
api_router.include_router(notifications.router, tags=["Notifications"])
