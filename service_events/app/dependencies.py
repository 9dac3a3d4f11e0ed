"""
FastAPI dependencies for routers mounted on the events service app.

CRUD routers emit after their own write has completed::

    @router.put("/tasks/{task_id}")
    async def update_task(..., emitter: ActivityEmitter = Depends(get_emitter)):
        task = await save(...)
        emitter.emit(EventKind.TASK_UPDATED, TaskSubject(task), user.subject)
        return task
"""

from fastapi import Request

from .emitter.emitter import ActivityEmitter
from .sse.registry import ConnectionRegistry


def get_emitter(request: Request) -> ActivityEmitter:
    return request.app.state.events_service.emitter


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.events_service.registry
