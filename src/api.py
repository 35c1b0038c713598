"""
api.py

REST API layer for the project calculation system.

Framework : FastAPI

Structure
---------
  Routers (all prefixed under /api/v1)
  ├── /users                              — user CRUD, employee listing
  │   └── /by-username/{username}         — lookup by username
  ├── /projects                           — project CRUD
  │   ├── /details                        — detail views (scope / manager / employee filters)
  │   ├── /{project_id}/details           — one project with milestones, tasks, progress
  │   ├── /{project_id}/progress          — completed-milestone percentage
  │   ├── /{project_id}/hours             — estimated vs. actual hour totals
  │   └── /{project_id}/milestones        — list (finished / ongoing) and add milestones
  ├── /milestones/{milestone_id}          — status changes, task creation
  └── /tasks/{task_id}                    — hours and coworker assignment

Error handling
--------------
  DomainError is mapped on kind / reason:
    NOT_FOUND (kind or reason)  → 404
    DUPLICATE_NAME              → 409
    VALIDATION / INVALID_FIELD  → 422
    PERSISTENCE_FAILURE         → 503
  Request-body validation       → 422 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>", "kind": "<kind>", "reason": "<reason>|null" }

Running
-------
  uvicorn api:app --reload
"""

from __future__ import annotations

import dataclasses
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Path, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_mcp import FastApiMCP
from pydantic import BaseModel, EmailStr, Field

from application import (
    AbstractUnitOfWork,
    # Use-case commands / queries
    AddMilestoneCommand,
    AddTaskCommand,
    CreateProjectCommand,
    CreateUserCommand,
    ProjectDetailsQuery,
    ProjectScope,
    UpdateProjectCommand,
    UpdateUserCommand,
    # Use-case classes
    AddMilestoneUseCase,
    AddTaskUseCase,
    AssignCoworkerUseCase,
    CreateProjectUseCase,
    CreateUserUseCase,
    DeleteProjectUseCase,
    DeleteUserUseCase,
    GetProjectDetailUseCase,
    GetProjectHoursUseCase,
    GetProjectProgressUseCase,
    GetProjectUseCase,
    GetUserByUsernameUseCase,
    GetUserUseCase,
    ListProjectDetailsUseCase,
    ListProjectMilestonesUseCase,
    ListProjectsUseCase,
    ListUsersUseCase,
    RecordTaskHoursUseCase,
    SetMilestoneStatusUseCase,
    UpdateProjectUseCase,
    UpdateUserUseCase,
)
from config import get_settings
from errors import DomainError, ErrorKind, ErrorReason
from infrastructure import InMemoryUnitOfWork
from log import setup_logging
from model import Role, Status

settings = get_settings()


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_title,
    version="1.0.0",
    description=(
        "REST API for tracking projects, their milestones and tasks, and the "
        "figures rolled up from them: progress, estimated vs. actual hours, "
        "and views by manager, employee and status."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def configure_logging():
    setup_logging(settings)


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------

_STATUS_BY_REASON = {
    ErrorReason.NOT_FOUND: 404,
    ErrorReason.DUPLICATE_NAME: 409,
    ErrorReason.INVALID_FIELD: 422,
    ErrorReason.PERSISTENCE_FAILURE: 503,
}


def status_for(exc: DomainError) -> int:
    if exc.kind == ErrorKind.VALIDATION:
        return 422
    return _STATUS_BY_REASON.get(exc.reason, 500)


@app.exception_handler(DomainError)
async def domain_error_handler(request, exc: DomainError):
    return JSONResponse(
        status_code=status_for(exc),
        content={
            "detail": str(exc),
            "kind": exc.kind.value,
            "reason": exc.reason.value if exc.reason else None,
        },
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_uow() -> AbstractUnitOfWork:
    """Returns the in-memory Unit of Work (no database required)."""
    return InMemoryUnitOfWork()


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a DTO or list of DTOs in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

# ---------------------------------------------------------------------------
# User schemas
# ---------------------------------------------------------------------------

class CreateUserRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    full_name: str = Field(default="", max_length=200)
    email: Optional[EmailStr] = None
    role: Role = Role.EMPLOYEE


class UpdateUserRequest(BaseModel):
    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    full_name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None


# ---------------------------------------------------------------------------
# Project schemas
# ---------------------------------------------------------------------------

class CreateProjectRequest(BaseModel):
    name: str
    description: str = Field(default="")
    manager_id: Optional[int] = None
    status: Status = Status.NOT_STARTED
    deadline: Optional[date] = None
    start_date: Optional[date] = None


class UpdateProjectRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    manager_id: Optional[int] = None
    status: Optional[Status] = None
    deadline: Optional[date] = None
    start_date: Optional[date] = None


# ---------------------------------------------------------------------------
# Milestone & task schemas
# ---------------------------------------------------------------------------

class AddMilestoneRequest(BaseModel):
    name: str
    description: str = Field(default="")
    status: Status = Status.NOT_STARTED
    deadline: Optional[date] = None


class SetMilestoneStatusRequest(BaseModel):
    status: Status


class AddTaskRequest(BaseModel):
    name: str
    description: str = Field(default="")
    status: Status = Status.NOT_STARTED
    estimated_hours: int = Field(default=0, ge=0)
    actual_hours_used: int = Field(default=0, ge=0)
    coworker_ids: List[int] = Field(default_factory=list)


class RecordTaskHoursRequest(BaseModel):
    actual_hours_used: int = Field(..., ge=0)


class AssignCoworkerRequest(BaseModel):
    user_id: int


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

user_router = APIRouter(prefix="/users", tags=["Users"])


@user_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
    response_description="The created user.",
)
def create_user(
    body: CreateUserRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = CreateUserCommand(
        username=body.username,
        full_name=body.full_name,
        email=str(body.email) if body.email else "",
        role=body.role,
    )
    result = CreateUserUseCase().execute(cmd, uow)
    return _ok(result)


@user_router.get(
    "",
    summary="List users",
)
def list_users(
    employees_only: bool = Query(False, description="Only return users with the employee role."),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = ListUsersUseCase().execute(uow, employees_only=employees_only)
    return _ok(result)


@user_router.get(
    "/by-username/{username}",
    summary="Get a user by username",
)
def get_user_by_username(
    username: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = GetUserByUsernameUseCase().execute(username, uow)
    return _ok(result)


@user_router.get(
    "/{user_id}",
    summary="Get a user by ID",
)
def get_user(
    user_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = GetUserUseCase().execute(user_id, uow)
    return _ok(result)


@user_router.patch(
    "/{user_id}",
    summary="Update a user",
)
def update_user(
    body: UpdateUserRequest,
    user_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = UpdateUserCommand(
        user_id=user_id,
        username=body.username,
        full_name=body.full_name,
        email=str(body.email) if body.email else None,
        role=body.role,
    )
    result = UpdateUserUseCase().execute(cmd, uow)
    return _ok(result)


@user_router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a user",
)
def delete_user(
    user_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    DeleteUserUseCase().execute(user_id, uow)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

project_router = APIRouter(prefix="/projects", tags=["Projects"])


@project_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
    response_description="The created project.",
)
def create_project(
    body: CreateProjectRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Project names are unique regardless of case.  Creating a project that is
    already completed stamps its completion time.
    """
    cmd = CreateProjectCommand(
        name=body.name,
        description=body.description,
        manager_id=body.manager_id,
        status=body.status,
        deadline=body.deadline,
        start_date=body.start_date,
    )
    result = CreateProjectUseCase().execute(cmd, uow)
    return _ok(result)


@project_router.get(
    "",
    summary="List all projects",
)
def list_projects(
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = ListProjectsUseCase().execute(uow)
    return _ok(result)


@project_router.get(
    "/details",
    summary="List project detail views",
)
def list_project_details(
    scope: ProjectScope = Query(ProjectScope.ALL),
    manager_id: Optional[int] = Query(None, description="Only projects owned by this manager."),
    employee_id: Optional[int] = Query(None, description="Only projects this employee works on."),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    query = ProjectDetailsQuery(scope=scope, manager_id=manager_id, employee_id=employee_id)
    result = ListProjectDetailsUseCase().execute(query, uow)
    return _ok(result)


@project_router.get(
    "/{project_id}",
    summary="Get a project by ID",
)
def get_project(
    project_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = GetProjectUseCase().execute(project_id, uow)
    return _ok(result)


@project_router.patch(
    "/{project_id}",
    summary="Update project fields or status",
)
def update_project(
    body: UpdateProjectRequest,
    project_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Moving a project to `completed` stamps `completed_at` the first time;
    moving it out of `completed` clears it.  Fields left out of the body keep
    their stored value; an explicit `null` clears `manager_id`, `deadline`
    or `start_date`.
    """
    cmd = UpdateProjectCommand(
        project_id=project_id,
        changes=body.model_dump(exclude_unset=True),
    )
    result = UpdateProjectUseCase().execute(cmd, uow)
    return _ok(result)


@project_router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project",
)
def delete_project(
    project_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    DeleteProjectUseCase().execute(project_id, uow)


@project_router.get(
    "/{project_id}/details",
    summary="Get a project with its milestones, tasks and progress",
)
def get_project_detail(
    project_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = GetProjectDetailUseCase().execute(project_id, uow)
    return _ok(result)


@project_router.get(
    "/{project_id}/progress",
    summary="Percentage of completed milestones",
)
def get_project_progress(
    project_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = GetProjectProgressUseCase().execute(project_id, uow)
    return _ok(result)


@project_router.get(
    "/{project_id}/hours",
    summary="Estimated and actual hours summed over all tasks",
)
def get_project_hours(
    project_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = GetProjectHoursUseCase().execute(project_id, uow)
    return _ok(result)


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------

milestone_router = APIRouter(tags=["Milestones"])


@milestone_router.get(
    "/projects/{project_id}/milestones",
    summary="List a project's milestones",
)
def list_project_milestones(
    project_id: int = Path(...),
    scope: ProjectScope = Query(ProjectScope.ALL),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = ListProjectMilestonesUseCase().execute(project_id, scope, uow)
    return _ok(result)


@milestone_router.post(
    "/projects/{project_id}/milestones",
    status_code=status.HTTP_201_CREATED,
    summary="Add a milestone to a project",
)
def add_milestone(
    body: AddMilestoneRequest,
    project_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = AddMilestoneCommand(
        project_id=project_id,
        name=body.name,
        description=body.description,
        status=body.status,
        deadline=body.deadline,
    )
    result = AddMilestoneUseCase().execute(cmd, uow)
    return _ok(result)


@milestone_router.patch(
    "/milestones/{milestone_id}/status",
    summary="Change a milestone's status",
)
def set_milestone_status(
    body: SetMilestoneStatusRequest,
    milestone_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = SetMilestoneStatusUseCase().execute(milestone_id, body.status, uow)
    return _ok(result)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

task_router = APIRouter(tags=["Tasks"])


@task_router.post(
    "/milestones/{milestone_id}/tasks",
    status_code=status.HTTP_201_CREATED,
    summary="Add a task to a milestone",
)
def add_task(
    body: AddTaskRequest,
    milestone_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = AddTaskCommand(
        milestone_id=milestone_id,
        name=body.name,
        description=body.description,
        status=body.status,
        estimated_hours=body.estimated_hours,
        actual_hours_used=body.actual_hours_used,
        coworker_ids=set(body.coworker_ids),
    )
    result = AddTaskUseCase().execute(cmd, uow)
    return _ok(result)


@task_router.patch(
    "/tasks/{task_id}/hours",
    summary="Record the hours actually used on a task",
)
def record_task_hours(
    body: RecordTaskHoursRequest,
    task_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = RecordTaskHoursUseCase().execute(task_id, body.actual_hours_used, uow)
    return _ok(result)


@task_router.post(
    "/tasks/{task_id}/coworkers",
    summary="Assign an employee to a task",
)
def assign_coworker(
    body: AssignCoworkerRequest,
    task_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = AssignCoworkerUseCase().execute(task_id, body.user_id, uow)
    return _ok(result)


# ===========================================================================
# HEALTH CHECK
# ===========================================================================

@app.get("/health", tags=["Health"], summary="Service health check")
def health():
    return {"status": "ok"}


# ===========================================================================
# REGISTER ROUTERS
# ===========================================================================

api_v1.include_router(user_router)
api_v1.include_router(project_router)
api_v1.include_router(milestone_router)
api_v1.include_router(task_router)

app.include_router(api_v1)

# ---------------------------------------------------------------------------
# MCP Server — exposes all API routes as MCP tools
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------
if settings.mcp_enabled:
    mcp = FastApiMCP(app)
    mcp.mount_http()


# ===========================================================================
# OPENAPI CUSTOMISATION — tag order and descriptions
# ===========================================================================

tags_metadata = [
    {
        "name": "Health",
        "description": "Liveness check.",
    },
    {
        "name": "Users",
        "description": (
            "Managers and employees.  Usernames are unique; employees can be "
            "assigned to tasks as coworkers."
        ),
    },
    {
        "name": "Projects",
        "description": (
            "Projects and their rolled-up figures: detail views with progress, "
            "hour totals, and listings filtered by status, manager or employee."
        ),
    },
    {
        "name": "Milestones",
        "description": (
            "Checkpoints within a project.  Project progress is the share of "
            "its milestones that are completed."
        ),
    },
    {
        "name": "Tasks",
        "description": (
            "Units of work inside a milestone with estimated and actual hours "
            "and the employees assigned to them."
        ),
    },
]

app.openapi_tags = tags_metadata
