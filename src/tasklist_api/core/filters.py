"""Filter predicate composer.

Each optional filter becomes at most one `Predicate`: a SQL fragment with
`%s` placeholders plus the values bound to them. Values never enter the
fragment text. An unset or empty filter produces no predicate, so it never
narrows the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tasklist_api.core.models import FilterCriteria


@dataclass(frozen=True)
class Predicate:
    name: str
    template: str
    params: tuple[Any, ...] = ()


def compose_predicates(criteria: FilterCriteria, *, scope_id: str) -> list[Predicate]:
    """Translate criteria into an ordered list of predicates joined with AND.

    `scope_id` is the project id, or the team member id when
    `criteria.filter_by == "member"`.
    """
    is_children = criteria.sub_task_scope == "children"
    predicates: list[Predicate] = []

    sub_task = _sub_task_predicate(criteria)
    if sub_task is not None:
        predicates.append(sub_task)

    # A parent's children are listed in full, whatever the scope or archive state.
    if not is_children:
        predicates.append(_archived_predicate(criteria.archived))
        predicates.append(_scope_predicate(criteria.filter_by, scope_id))

    for predicate in (
        _membership("statuses", "t.status_id = ANY(%s::uuid[])", criteria.statuses),
        _membership("priorities", "t.priority_id = ANY(%s::uuid[])", criteria.priorities),
        _membership(
            "labels",
            "t.id IN (SELECT task_id FROM task_labels WHERE label_id = ANY(%s::uuid[]))",
            criteria.labels,
        ),
        _membership(
            "members",
            "t.id IN (SELECT task_id FROM tasks_assignees WHERE team_member_id = ANY(%s::uuid[]))",
            criteria.members,
        ),
        _membership("projects", "t.project_id = ANY(%s::uuid[])", criteria.projects),
    ):
        if predicate is not None:
            predicates.append(predicate)
    return predicates


def join_predicates(predicates: list[Predicate]) -> tuple[str, list[Any]]:
    """Merge predicates into one WHERE body and its positional params."""
    if not predicates:
        return "TRUE", []
    clause = " AND ".join(f"({p.template})" for p in predicates)
    params: list[Any] = []
    for predicate in predicates:
        params.extend(predicate.params)
    return clause, params


def parse_id_list(raw: str | list[str] | None) -> list[str]:
    """Split a space or comma separated id list, dropping blanks and duplicates."""
    if raw is None:
        return []
    items = raw if isinstance(raw, list) else [raw]
    seen: dict[str, None] = {}
    for item in items:
        for part in item.replace(",", " ").split():
            seen.setdefault(part, None)
    return list(seen)


def _sub_task_predicate(criteria: FilterCriteria) -> Predicate | None:
    if criteria.sub_task_scope == "all":
        return None
    if criteria.sub_task_scope == "children":
        return Predicate("parent", "t.parent_task_id = %s::uuid", (criteria.parent_task_id,))
    return Predicate("root", "t.parent_task_id IS NULL")


def _archived_predicate(archived: bool) -> Predicate:
    if archived:
        return Predicate("archived", "t.archived IS TRUE")
    return Predicate("active", "t.archived IS FALSE")


def _scope_predicate(filter_by: str, scope_id: str) -> Predicate:
    if filter_by == "member":
        return Predicate(
            "assignee",
            "t.id IN (SELECT task_id FROM tasks_assignees WHERE team_member_id = %s::uuid)",
            (scope_id,),
        )
    return Predicate("project", "t.project_id = %s::uuid", (scope_id,))


def _membership(name: str, template: str, values: list[str]) -> Predicate | None:
    if not values:
        return None
    return Predicate(name, template, (list(values),))
