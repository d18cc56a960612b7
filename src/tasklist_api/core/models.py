"""Pydantic models shared by the filter engine, grouping, storage, and API.

Terms used in this file:
- Status category: the coarse bucket (todo, doing, done) a project status belongs to.
- Group shell: an empty TaskGroup built from a status/priority/label/phase row.
- Unmapped: the overflow group for tasks whose group key has no shell.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

UNMAPPED = "Unmapped"
UNMAPPED_COLOR = "#fbc84c69"
# Appended to category colors so group headers render translucent.
TASK_STATUS_COLOR_ALPHA = "69"


class GroupDimension(StrEnum):
    STATUS = "status"
    PRIORITY = "priority"
    LABELS = "labels"
    PHASE = "phase"


SubTaskScope = Literal["root", "children", "all"]
FilterBy = Literal["project", "member"]
SortOrder = Literal["ascend", "descend"]
SortField = Literal[
    "sort_order",
    "name",
    "created_at",
    "updated_at",
    "start_date",
    "end_date",
    "completed_at",
    "priority_value",
]


class FilterCriteria(BaseModel):
    """Optional filter inputs for one task list request."""

    model_config = ConfigDict(extra="forbid")

    statuses: list[str] = Field(default_factory=list)
    priorities: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    members: list[str] = Field(default_factory=list)
    projects: list[str] = Field(default_factory=list)
    # "member" scopes the list to tasks assigned to the scope id instead of a project.
    filter_by: FilterBy = "project"
    archived: bool = False
    sub_task_scope: SubTaskScope = "root"
    parent_task_id: str | None = None
    search: str | None = None
    group: GroupDimension = GroupDimension.STATUS
    sort_field: SortField = "sort_order"
    sort_order: SortOrder = "ascend"
    count_only: bool = False
    include_custom_columns: bool = True

    @model_validator(mode="after")
    def _check_consistency(self) -> FilterCriteria:
        if self.sub_task_scope == "children" and not self.parent_task_id:
            raise ValueError("sub_task_scope 'children' requires parent_task_id")
        if self.sub_task_scope != "children" and self.parent_task_id:
            raise ValueError(
                f"parent_task_id cannot be combined with sub_task_scope '{self.sub_task_scope}'"
            )
        if self.filter_by == "member" and self.members:
            raise ValueError("members filter cannot be combined with filter_by 'member'")
        return self

    @property
    def is_tasks_only(self) -> bool:
        """True when the caller wants a flat list or a count instead of groups."""
        return self.count_only or self.sub_task_scope == "children"


class StatusCategory(BaseModel):
    """Category flags of a status; exactly one flag is set."""

    is_todo: bool = False
    is_doing: bool = False
    is_done: bool = False

    @model_validator(mode="after")
    def _exactly_one(self) -> StatusCategory:
        flags = (self.is_todo, self.is_doing, self.is_done)
        if sum(1 for flag in flags if flag) != 1:
            raise ValueError("exactly one of is_todo, is_doing, is_done must be set")
        return self

    @classmethod
    def of(cls, name: Literal["todo", "doing", "done"]) -> StatusCategory:
        return cls(**{f"is_{name}": True})


class Assignee(BaseModel):
    model_config = ConfigDict(extra="allow")

    team_member_id: str
    name: str | None = None
    avatar_url: str | None = None
    color_code: str | None = None


class TaskLabel(BaseModel):
    id: str
    name: str | None = None
    color_code: str | None = None


class StatusOption(BaseModel):
    id: str
    name: str
    color_code: str | None = None


class TaskRecord(BaseModel):
    """One task row as read from the store, plus derived view fields."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    task_key: str | None = None
    project_id: str
    project_name: str | None = None
    parent_task_id: str | None = None
    parent_task_name: str | None = None
    sub_tasks_count: int = 0
    completed_sub_tasks: int = 0
    # Status id; kept under the historical column alias.
    status: str | None = None
    status_color: str | None = None
    status_color_dark: str | None = None
    status_category: StatusCategory | None = None
    priority: str | None = None
    priority_value: int | None = None
    phase_id: str | None = None
    phase_name: str | None = None
    phase_color_code: str | None = None
    archived: bool = False
    description: str | None = None
    sort_order: int = 0
    has_subscribers: bool = False
    has_dependencies: bool = False
    timer_start_time: datetime | None = None
    comments_count: int = 0
    attachments_count: int = 0
    parent_task_completed: int = 0
    is_complete: bool = False
    reporter: str | None = None
    assignees: list[Assignee] = Field(default_factory=list)
    labels: list[TaskLabel] = Field(default_factory=list)
    total_minutes: int = 0
    total_minutes_spent: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    billable: bool | None = None
    schedule_id: str | None = None
    custom_column_values: dict[str, Any] | None = None
    statuses: list[StatusOption] | None = None

    # Derived view fields, never persisted.
    index: int | None = None
    is_sub_task: bool = False
    complete_ratio: int = 0
    names: list[str] = Field(default_factory=list)
    total_time_string: str | None = None
    time_spent_string: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _empty_category_is_none(cls, data: Any) -> Any:
        # Stores return "{}" for tasks whose status has no category row.
        if isinstance(data, dict) and data.get("status_category") == {}:
            data = {**data, "status_category": None}
        return data


class TaskCount(BaseModel):
    total: int


class TaskGroup(BaseModel):
    """Named bucket of tasks with per-category progress ratios."""

    id: str
    name: str
    category_id: str | None = None
    color_code: str | None = None
    color_code_dark: str | None = None
    start_date: date | datetime | None = None
    end_date: date | datetime | None = None
    todo_progress: int = 0
    doing_progress: int = 0
    done_progress: int = 0
    tasks: list[TaskRecord] = Field(default_factory=list)

    @classmethod
    def from_shell(cls, row: dict[str, Any]) -> TaskGroup:
        """Build an empty group from a status/priority/label/phase row."""
        color = row.get("color_code")
        return cls(
            id=str(row["id"]),
            name=row["name"],
            category_id=str(row["category_id"]) if row.get("category_id") else None,
            color_code=f"{color}{TASK_STATUS_COLOR_ALPHA}" if color else None,
            color_code_dark=row.get("color_code_dark"),
            start_date=row.get("start_date") or None,
            end_date=row.get("end_date") or None,
        )

    @classmethod
    def unmapped(cls) -> TaskGroup:
        return cls(id=UNMAPPED, name=UNMAPPED, color_code=UNMAPPED_COLOR)


class ReparentContext(BaseModel):
    """Destination of a convert-to-task / convert-to-subtask move."""

    project_id: str = Field(min_length=1)
    group_by: GroupDimension | None = None
    to_group_id: str | None = None


class CustomColumn(BaseModel):
    id: str
    key: str
    field_type: str


class CustomColumnValue(BaseModel):
    """Typed value slots; exactly the slot matching the column type is filled."""

    text_value: str | None = None
    number_value: float | None = None
    date_value: datetime | None = None
    boolean_value: bool | None = None
    json_value: list[Any] | None = None


class TaskCompleteRatio(BaseModel):
    ratio: int
    total_completed: int
    total_tasks: int


class TaskSearchHit(BaseModel):
    value: str
    label: str
    task_key: str | None = None


class Subscriber(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    avatar_url: str | None = None
    user_id: str | None = None
    team_member_id: str | None = None
    task_id: str
    color_code: str | None = None
