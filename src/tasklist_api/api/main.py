"""FastAPI app entrypoint for tasklist-api.

The caller identity is resolved upstream and arrives in the `X-User-Id` and
`X-Team-Id` headers; this service never authenticates.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tasklist_api.config.settings import Settings, get_settings
from tasklist_api.core.filters import parse_id_list
from tasklist_api.core.models import (
    FilterCriteria,
    ReparentContext,
    Subscriber,
    TaskLabel,
    TaskRecord,
    TaskSearchHit,
)
from tasklist_api.core.service import TaskListService, build_criteria
from tasklist_api.errors import InvalidInputError, TaskListError
from tasklist_api.storage.base import TaskStore
from tasklist_api.storage.postgres import PostgresTaskStore

logger = logging.getLogger(__name__)


class ConvertToTaskRequest(BaseModel):
    id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)


class ConvertToSubtaskRequest(BaseModel):
    id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    parent_task_id: str = Field(min_length=1)
    group_by: str | None = None
    to_group_id: str | None = None


class AssignLabelsRequest(BaseModel):
    labels: list[str] = Field(default_factory=list)


class CustomColumnValueRequest(BaseModel):
    project_id: str | None = None
    column_key: str | None = None
    value: Any = None


class DependencyStatus(BaseModel):
    can_continue: bool


class AssignmentStatus(BaseModel):
    assigned: bool


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    store_override: TaskStore | None,
) -> None:
    if not hasattr(app.state, "service"):
        database_url = settings.resolved_database_url()
        if store_override is None and not database_url:
            raise RuntimeError(
                "Missing database URL. Set TASKLIST_DATABASE_URL "
                "or DATABASE_URL before starting the app."
            )
        store = store_override or PostgresTaskStore(database_url)
        app.state.service = TaskListService(store, search_limit=settings.search_limit)

    if not hasattr(app.state, "settings"):
        app.state.settings = settings


def create_app(
    *,
    store: TaskStore | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    logging.getLogger("tasklist_api").setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(app, settings=settings, store_override=store)
        yield

    app_lifespan = lifespan if store is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if store is not None:
        _ensure_runtime_state(app, settings=settings, store_override=store)

    def _service(request: Request) -> TaskListService:
        if not hasattr(request.app.state, "service"):
            _ensure_runtime_state(request.app, settings=settings, store_override=store)
        return request.app.state.service

    @app.exception_handler(TaskListError)
    async def task_list_error(request: Request, exc: TaskListError) -> JSONResponse:
        logger.info(
            "task_list event=rejected path=%s status=%s reason=%s",
            request.url.path,
            exc.status_code,
            exc,
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    def _criteria(
        *,
        filter_by: str,
        statuses: str | None,
        priorities: str | None,
        labels: str | None,
        members: str | None,
        projects: str | None,
        archived: bool,
        parent_task: str | None,
        include_sub_tasks: bool,
        search: str | None,
        group: str | None,
        field: str | None,
        order: str | None,
        count: bool,
    ) -> FilterCriteria:
        if parent_task:
            scope = "children"
        elif include_sub_tasks:
            scope = "all"
        else:
            scope = "root"
        raw: dict[str, Any] = {
            "statuses": parse_id_list(statuses),
            "priorities": parse_id_list(priorities),
            "labels": parse_id_list(labels),
            "members": parse_id_list(members),
            "projects": parse_id_list(projects),
            "filter_by": filter_by,
            "archived": archived,
            "sub_task_scope": scope,
            "parent_task_id": parent_task or None,
            "search": search,
            "group": group or settings.default_group.value,
            "count_only": count,
        }
        if field:
            raw["sort_field"] = field
        if order:
            raw["sort_order"] = order
        return build_criteria(**raw)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/projects/{project_id}/task-groups")
    async def list_task_groups(
        project_id: str,
        request: Request,
        statuses: str | None = None,
        priorities: str | None = None,
        labels: str | None = None,
        members: str | None = None,
        projects: str | None = None,
        archived: bool = False,
        parent_task: str | None = None,
        include_sub_tasks: bool = Query(default=False, alias="isSubtasksInclude"),
        search: str | None = None,
        group: str | None = None,
        field: str | None = None,
        order: str | None = None,
        count: bool = False,
        x_user_id: str | None = Header(default=None),
        x_team_id: str | None = Header(default=None),
    ) -> Any:
        criteria = _criteria(
            filter_by="project",
            statuses=statuses,
            priorities=priorities,
            labels=labels,
            members=members,
            projects=projects,
            archived=archived,
            parent_task=parent_task,
            include_sub_tasks=include_sub_tasks,
            search=search,
            group=group,
            field=field,
            order=order,
            count=count,
        )
        service = _service(request)
        if criteria.is_tasks_only:
            return await service.list_flat(project_id, criteria, user_id=x_user_id)
        return await service.list_grouped(
            project_id,
            criteria,
            user_id=x_user_id,
            team_id=x_team_id,
        )

    @app.get("/projects/{project_id}/tasks")
    async def list_project_tasks(
        project_id: str,
        request: Request,
        statuses: str | None = None,
        priorities: str | None = None,
        labels: str | None = None,
        members: str | None = None,
        projects: str | None = None,
        archived: bool = False,
        parent_task: str | None = None,
        include_sub_tasks: bool = Query(default=False, alias="isSubtasksInclude"),
        search: str | None = None,
        field: str | None = None,
        order: str | None = None,
        count: bool = False,
        x_user_id: str | None = Header(default=None),
    ) -> Any:
        criteria = _criteria(
            filter_by="project",
            statuses=statuses,
            priorities=priorities,
            labels=labels,
            members=members,
            projects=projects,
            archived=archived,
            parent_task=parent_task,
            include_sub_tasks=include_sub_tasks,
            search=search,
            group=None,
            field=field,
            order=order,
            count=count,
        )
        return await _service(request).list_flat(project_id, criteria, user_id=x_user_id)

    @app.get("/members/{member_id}/tasks")
    async def list_member_tasks(
        member_id: str,
        request: Request,
        statuses: str | None = None,
        priorities: str | None = None,
        labels: str | None = None,
        projects: str | None = None,
        archived: bool = False,
        parent_task: str | None = None,
        include_sub_tasks: bool = Query(default=False, alias="isSubtasksInclude"),
        search: str | None = None,
        field: str | None = None,
        order: str | None = None,
        count: bool = False,
        x_user_id: str | None = Header(default=None),
    ) -> Any:
        criteria = _criteria(
            filter_by="member",
            statuses=statuses,
            priorities=priorities,
            labels=labels,
            members=None,
            projects=projects,
            archived=archived,
            parent_task=parent_task,
            include_sub_tasks=include_sub_tasks,
            search=search,
            group=None,
            field=field,
            order=order,
            count=count,
        )
        return await _service(request).list_flat(member_id, criteria, user_id=x_user_id)

    @app.get("/tasks/search", response_model=list[TaskSearchHit])
    async def search_tasks(
        request: Request,
        project_id: str = Query(alias="projectId"),
        search_query: str = Query(default="", alias="searchQuery"),
        task_id: str | None = Query(default=None, alias="taskId"),
    ) -> list[TaskSearchHit]:
        return await _service(request).search_tasks(
            project_id,
            search_query,
            exclude_task_id=task_id,
        )

    @app.put("/tasks/convert-to-task", response_model=TaskRecord)
    async def convert_to_task(
        payload: ConvertToTaskRequest,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> TaskRecord:
        return await _service(request).reparent(
            payload.id,
            None,
            ReparentContext(project_id=payload.project_id),
            user_id=x_user_id,
        )

    @app.put("/tasks/convert-to-subtask", response_model=TaskRecord)
    async def convert_to_subtask(
        payload: ConvertToSubtaskRequest,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> TaskRecord:
        context = _reparent_context(payload)
        return await _service(request).reparent(
            payload.id,
            payload.parent_task_id,
            context,
            user_id=x_user_id,
        )

    @app.get("/tasks/{task_id}", response_model=TaskRecord)
    async def get_task(
        task_id: str,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> TaskRecord:
        return await _service(request).get_task(task_id, user_id=x_user_id)

    @app.get("/tasks/{task_id}/dependency-status", response_model=DependencyStatus)
    async def dependency_status(
        task_id: str,
        request: Request,
        status_id: str = Query(alias="statusId"),
    ) -> DependencyStatus:
        can_continue = await _service(request).evaluate_dependency_gate(task_id, status_id)
        return DependencyStatus(can_continue=can_continue)

    @app.get("/tasks/{task_id}/subscribers", response_model=list[Subscriber])
    async def get_subscribers(task_id: str, request: Request) -> list[Subscriber]:
        return await _service(request).get_subscribers(task_id)

    @app.get("/tasks/{task_id}/assignment", response_model=AssignmentStatus)
    async def assignment_status(
        task_id: str,
        request: Request,
        x_user_id: str | None = Header(default=None),
        x_team_id: str | None = Header(default=None),
    ) -> AssignmentStatus:
        assigned = await _service(request).is_user_assigned(
            task_id,
            user_id=x_user_id,
            team_id=x_team_id,
        )
        return AssignmentStatus(assigned=assigned)

    @app.put("/tasks/{task_id}/labels", response_model=list[TaskLabel])
    async def assign_labels(
        task_id: str,
        payload: AssignLabelsRequest,
        request: Request,
    ) -> list[TaskLabel]:
        return await _service(request).assign_labels(task_id, payload.labels)

    @app.put("/tasks/{task_id}/custom-column")
    async def update_custom_column(
        task_id: str,
        payload: CustomColumnValueRequest,
        request: Request,
    ) -> dict[str, Any]:
        return await _service(request).update_custom_column_value(
            task_id,
            project_id=payload.project_id or "",
            column_key=payload.column_key or "",
            value=payload.value,
        )

    return app


def _reparent_context(payload: ConvertToSubtaskRequest) -> ReparentContext:
    try:
        return ReparentContext.model_validate(
            {
                "project_id": payload.project_id,
                "group_by": payload.group_by or None,
                "to_group_id": payload.to_group_id,
            }
        )
    except ValueError as exc:
        raise InvalidInputError(f"Unknown group_by: {payload.group_by}") from exc
