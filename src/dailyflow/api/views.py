"""Views API: grouped by day, daily summary, dashboard buckets."""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.concurrency import run_in_threadpool

from dailyflow.core.deps import CurrentUserIdDep, ViewServiceDep
from dailyflow.models.task import DailySummary, DashboardView, TaskGroup, TaskStatusFilter

router = APIRouter(prefix="/views", tags=["views"])


@router.get("/grouped", response_model=list[TaskGroup])
async def get_grouped(
    user_id: CurrentUserIdDep,
    view_service: ViewServiceDep,
    status: TaskStatusFilter = Query(
        TaskStatusFilter.ALL, description="Completion filter"),
    days: Optional[int] = Query(
        None, description="Only tasks starting in the last 7, 30 or 90 days"),
) -> list[TaskGroup]:
    """Tasks grouped by local start day, newest first."""
    return await run_in_threadpool(view_service.get_grouped_tasks, user_id, status, days)


@router.get("/summary", response_model=DailySummary)
async def get_summary(user_id: CurrentUserIdDep, view_service: ViewServiceDep) -> DailySummary:
    """Today's totals and the next upcoming task."""
    return await run_in_threadpool(view_service.get_daily_summary, user_id)


@router.get("/dashboard", response_model=DashboardView)
async def get_dashboard(user_id: CurrentUserIdDep, view_service: ViewServiceDep) -> DashboardView:
    """Today, running, upcoming and completed buckets."""
    return await run_in_threadpool(view_service.get_dashboard, user_id)
