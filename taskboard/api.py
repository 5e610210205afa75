"""
FILE: taskboard/api.py
PURPOSE: FastAPI application exposing tasks, moves, dependencies and reference data
EXPORTS:
  - create_app(settings, authorize) -> FastAPI
  - STATUS_CODES (error kind -> HTTP status)
DEPENDENCIES:
  - fastapi (routing, request validation, TestClient in tests)
  - pydantic (request bodies)
  - loguru (logging)
  - taskboard.core.service / dependencies / audit / reference
NOTES:
  - Handlers are plain functions: FastAPI runs them in its threadpool, and
    every core call opens its own SQLite connection
  - Every error body is {"error": kind, "message": str, "details": {...}}
  - authorize(request, action) is consulted before the core runs;
    False -> 403
  - Served by `taskboard serve` (uvicorn, factory mode)
"""

from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from .cli.main import __version__
from .config import Settings, load_settings
from .core import audit, dependencies, service
from .core.audit import emitter
from .core.constants import MAX_ROW_ID
from .core.exceptions import ForbiddenError, NotFoundError, TaskboardError
from .core.reference import resolver
from .core.repository import ANY_BOARD
from .log import configure_logging


Authorizer = Callable[[Request, str], bool]

STATUS_CODES = {
    "validation": 400,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
    "internal": 500,
}


# ---------------------------------------------------------------------------
# Pydantic request models
# ---------------------------------------------------------------------------


class CriterionModel(BaseModel):
    description: str
    id: Optional[str] = None
    completed: bool = False
    completed_at: Optional[str] = None
    order: int = 0
    category: Optional[str] = None
    notes: Optional[str] = None


class TaskContentModel(BaseModel):
    description: str = ""
    acceptance_criteria: List[CriterionModel] = Field(default_factory=list)
    implementation_details: Optional[str] = None
    notes: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    due_date: Optional[str] = None
    assignee: Optional[str] = None


class CreateTaskRequest(BaseModel):
    title: str
    status_id: Optional[int] = Field(None, ge=1, le=MAX_ROW_ID)
    board_id: Optional[int] = Field(None, ge=0, le=MAX_ROW_ID)
    priority: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    content: Optional[TaskContentModel] = None
    actor: Optional[str] = None


class UpdateTaskRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    content: Optional[TaskContentModel] = None
    actor: Optional[str] = None


class MoveTaskRequest(BaseModel):
    status_id: int = Field(..., ge=1, le=MAX_ROW_ID)
    order: int = Field(..., ge=0, le=MAX_ROW_ID)
    previous_status_id: Optional[int] = Field(None, ge=1, le=MAX_ROW_ID)
    type: Optional[str] = None
    comment: Optional[str] = None
    actor: Optional[str] = None


class AddDependencyRequest(BaseModel):
    depends_on_id: int = Field(..., le=MAX_ROW_ID)


class AddCriterionRequest(BaseModel):
    description: str
    category: Optional[str] = None
    notes: Optional[str] = None


class SetCriterionRequest(BaseModel):
    completed: bool


def _content(body: Optional[TaskContentModel]) -> Optional[Dict[str, Any]]:
    return body.model_dump() if body is not None else None


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    authorize: Optional[Authorizer] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Store/logging settings (defaults to the environment).
        authorize: Optional capability check ``(request, action) -> bool``.
            Actions are ``task:create``, ``task:read``, ``task:update``,
            ``task:move``, ``task:delete`` and ``reference:read``.

    Returns:
        Configured FastAPI app.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    service.configure(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Let queued audit writes land before the process exits
        emitter.flush()

    app = FastAPI(
        title="taskboard",
        description="Task board with strictly ordered status columns",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    def require(action: str):
        def check(request: Request) -> None:
            if authorize is not None and not authorize(request, action):
                logger.warning("Denied {} {} ({})", request.method, request.url.path, action)
                raise ForbiddenError(action)

        return Depends(check)

    @app.exception_handler(TaskboardError)
    async def handle_taskboard_error(request: Request, exc: TaskboardError) -> JSONResponse:
        status_code = STATUS_CODES.get(exc.kind, 500)
        if status_code >= 500:
            logger.error("{} {} failed: {} ({})", request.method, request.url.path, exc, exc.details)
        return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=jsonable_encoder(
                {
                    "error": "validation",
                    "message": "Invalid request",
                    "details": {"errors": exc.errors()},
                }
            ),
        )

    @app.exception_handler(OverflowError)
    async def handle_overflow(request: Request, exc: OverflowError) -> JSONResponse:
        # Path and query ids beyond the 64-bit range never reach a row
        return JSONResponse(
            status_code=400,
            content={"error": "validation", "message": "Integer value out of range", "details": {}},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error("{} {} crashed", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "internal", "message": "Internal server error", "details": {}},
        )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @app.post("/tasks", status_code=201, dependencies=[require("task:create")])
    def create_task(body: CreateTaskRequest) -> Dict[str, Any]:
        task = service.create_task(
            title=body.title,
            status_id=body.status_id,
            board_id=body.board_id,
            priority=body.priority,
            task_type=body.type,
            description=body.description,
            content=_content(body.content),
            actor=body.actor,
        )
        return task.to_dict()

    @app.get("/tasks", dependencies=[require("task:read")])
    def list_tasks(
        board_id: Optional[int] = Query(None),
        unscoped: bool = Query(False, description="Only tasks without a board"),
        status_id: Optional[int] = Query(None),
        priority: Optional[str] = Query(None, description="Priority code"),
    ) -> List[Dict[str, Any]]:
        if unscoped:
            board = None
        elif board_id is None:
            board = ANY_BOARD
        else:
            board = board_id
        return [t.to_dict() for t in service.list_tasks(board_id=board, status_id=status_id, priority=priority)]

    @app.get("/tasks/{task_id}", dependencies=[require("task:read")])
    def get_task(task_id: int) -> Dict[str, Any]:
        return service.get_task(task_id).to_dict()

    @app.patch("/tasks/{task_id}", dependencies=[require("task:update")])
    def update_task(task_id: int, body: UpdateTaskRequest) -> Dict[str, Any]:
        task = service.update_task(
            task_id,
            title=body.title,
            description=body.description,
            priority=body.priority,
            content=_content(body.content),
            actor=body.actor,
        )
        return task.to_dict()

    @app.put("/tasks/{task_id}/move", dependencies=[require("task:move")])
    def move_task(task_id: int, body: MoveTaskRequest) -> Dict[str, Any]:
        task = service.move_task(
            task_id,
            status_id=body.status_id,
            order=body.order,
            previous_status_id=body.previous_status_id,
            task_type=body.type,
            comment=body.comment,
            actor=body.actor,
        )
        return task.to_dict()

    @app.delete("/tasks/{task_id}", status_code=204, dependencies=[require("task:delete")])
    def delete_task(task_id: int) -> Response:
        service.delete_task(task_id)
        return Response(status_code=204)

    # ------------------------------------------------------------------
    # Acceptance criteria
    # ------------------------------------------------------------------

    @app.post("/tasks/{task_id}/criteria", status_code=201, dependencies=[require("task:update")])
    def add_criterion(task_id: int, body: AddCriterionRequest) -> Dict[str, Any]:
        task = service.add_criterion(task_id, body.description, body.category, body.notes)
        return task.to_dict()

    @app.put("/tasks/{task_id}/criteria/{criterion_id}", dependencies=[require("task:update")])
    def set_criterion(task_id: int, criterion_id: str, body: SetCriterionRequest) -> Dict[str, Any]:
        return service.set_criterion(task_id, criterion_id, body.completed).to_dict()

    # ------------------------------------------------------------------
    # Dependencies and history
    # ------------------------------------------------------------------

    @app.post("/tasks/{task_id}/dependencies", status_code=201, dependencies=[require("task:update")])
    def add_dependency(task_id: int, body: AddDependencyRequest) -> Dict[str, Any]:
        return dependencies.add_dependency(task_id, body.depends_on_id).to_dict()

    @app.delete(
        "/tasks/{task_id}/dependencies/{depends_on_id}",
        status_code=204,
        dependencies=[require("task:update")],
    )
    def remove_dependency(task_id: int, depends_on_id: int) -> Response:
        if not dependencies.remove_dependency(task_id, depends_on_id):
            raise NotFoundError(
                f"Task {task_id} does not depend on {depends_on_id}",
                {"task_id": task_id, "depends_on_id": depends_on_id},
            )
        return Response(status_code=204)

    @app.get("/tasks/{task_id}/history", dependencies=[require("task:read")])
    def get_history(task_id: int) -> Dict[str, Any]:
        task = service.get_task(task_id)
        return {
            "task_id": task.id,
            "status_history": [c.to_dict() for c in audit.list_status_history(task_id)],
            "audit": [e.to_dict() for e in audit.list_audit_entries(task_id)],
            "depends_on": [d.depends_on_id for d in dependencies.list_dependencies(task_id)],
            "dependents": [d.task_id for d in dependencies.list_dependents(task_id)],
        }

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    @app.get("/task-statuses", dependencies=[require("reference:read")])
    def list_statuses() -> List[Dict[str, Any]]:
        return [s.to_dict() for s in resolver.list_statuses()]

    @app.get("/task-priorities", dependencies=[require("reference:read")])
    def list_priorities() -> List[Dict[str, Any]]:
        return [p.to_dict() for p in resolver.list_priorities()]

    @app.get("/task-types", dependencies=[require("reference:read")])
    def list_types() -> List[Dict[str, Any]]:
        return [t.to_dict() for t in resolver.list_types()]

    return app
