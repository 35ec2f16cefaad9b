"""Tasks API. Every successful mutation re-arms the caller's reminders."""

import uuid

from fastapi import APIRouter, Response
from fastapi.concurrency import run_in_threadpool

from dailyflow.core.deps import CurrentUserIdDep, ReminderSessionDep, TaskServiceDep
from dailyflow.db.schema import Task
from dailyflow.models.task import TaskCreate, TaskResponse, TaskUpdate
from dailyflow.services.reminder_scheduler import TaskSnapshot

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _rearm(reminders: ReminderSessionDep, task: Task) -> Task:
    reminders.schedule_task_reminder(TaskSnapshot.from_task(task))
    return task


@router.get("/", response_model=list[TaskResponse])
async def list_tasks(
    user_id: CurrentUserIdDep,
    task_service: TaskServiceDep,
    reminders: ReminderSessionDep,
) -> list[TaskResponse]:
    """List the caller's tasks by start time; reloads all of their reminders."""
    async with reminders.lock:
        tasks = await run_in_threadpool(task_service.get_tasks, user_id)
        reminders.schedule_multiple_reminders(TaskSnapshot.from_task(t) for t in tasks)
    return tasks


@router.post("/", response_model=TaskResponse, status_code=201)
async def create_task(
    body: TaskCreate,
    user_id: CurrentUserIdDep,
    task_service: TaskServiceDep,
    reminders: ReminderSessionDep,
) -> TaskResponse:
    """Create task and arm its reminder."""
    async with reminders.lock:
        task = await run_in_threadpool(task_service.create_task, user_id, body)
        return _rearm(reminders, task)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: uuid.UUID,
    user_id: CurrentUserIdDep,
    task_service: TaskServiceDep,
) -> TaskResponse:
    """Get a single task owned by the caller."""
    return await run_in_threadpool(task_service.get_task, user_id, task_id)


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    user_id: CurrentUserIdDep,
    task_service: TaskServiceDep,
    reminders: ReminderSessionDep,
) -> TaskResponse:
    """Update task; its reminder is cancelled and re-armed from the new state."""
    async with reminders.lock:
        task = await run_in_threadpool(task_service.update_task, user_id, task_id, body)
        return _rearm(reminders, task)


@router.put("/{task_id}", response_model=TaskResponse)
async def replace_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    user_id: CurrentUserIdDep,
    task_service: TaskServiceDep,
    reminders: ReminderSessionDep,
) -> TaskResponse:
    """Alias of PATCH for clients that send PUT."""
    async with reminders.lock:
        task = await run_in_threadpool(task_service.update_task, user_id, task_id, body)
        return _rearm(reminders, task)


@router.delete("/{task_id}", status_code=204, response_class=Response)
async def delete_task(
    task_id: uuid.UUID,
    user_id: CurrentUserIdDep,
    task_service: TaskServiceDep,
    reminders: ReminderSessionDep,
) -> None:
    """Delete task and disarm its reminder."""
    async with reminders.lock:
        await run_in_threadpool(task_service.delete_task, user_id, task_id)
        reminders.clear_task_reminder(task_id)


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: uuid.UUID,
    user_id: CurrentUserIdDep,
    task_service: TaskServiceDep,
    reminders: ReminderSessionDep,
) -> TaskResponse:
    """Toggle completion; completing disarms the reminder, reopening re-arms it."""
    async with reminders.lock:
        task = await run_in_threadpool(task_service.complete_toggle, user_id, task_id)
        return _rearm(reminders, task)
