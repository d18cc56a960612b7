from __future__ import annotations

import pytest
from pydantic import ValidationError

from tasklist_api.core.models import FilterCriteria
from tasklist_api.core.query_planner import escape_like, plan_task_query

PROJECT = "5b0c1f1e-7c7e-4f7b-8d55-2b6a3a6e9d01"
USER = "0b8f4c52-93d4-4c61-8d1e-7d2a1e9c4f20"


def test_placeholders_match_bound_params() -> None:
    criteria = FilterCriteria(statuses=["s1"], labels=["l1"], search="brief")

    plan = plan_task_query(criteria, scope_id=PROJECT, user_id=USER)

    assert plan.sql.count("%s") == len(plan.params)
    assert plan.params[0] == USER


def test_search_text_is_bound_and_escaped() -> None:
    hostile = "50%' OR 1=1 --"
    plan = plan_task_query(FilterCriteria(search=hostile), scope_id=PROJECT, user_id=USER)

    assert hostile not in plan.sql
    assert "ILIKE %s ESCAPE" in plan.sql
    assert plan.params[-1] == "%50\\%' OR 1=1 --%"


def test_blank_search_adds_no_clause() -> None:
    plan = plan_task_query(FilterCriteria(search="   "), scope_id=PROJECT, user_id=USER)

    assert "ILIKE" not in plan.sql
    assert plan.search is None


def test_sort_uses_whitelisted_column_with_id_tiebreak() -> None:
    criteria = FilterCriteria(sort_field="name", sort_order="descend")

    plan = plan_task_query(criteria, scope_id=PROJECT, user_id=USER)

    assert plan.sql.rstrip().endswith("ORDER BY t.name DESC, t.id ASC")
    assert plan.descending is True


def test_unknown_sort_field_is_rejected() -> None:
    with pytest.raises(ValidationError):
        FilterCriteria(sort_field="name; DROP TABLE tasks")


def test_count_only_shares_predicates_with_full_listing() -> None:
    criteria = FilterCriteria(priorities=["p1"], search="x")
    full = plan_task_query(criteria, scope_id=PROJECT, user_id=USER)
    count = plan_task_query(criteria.model_copy(update={"count_only": True}), scope_id=PROJECT, user_id=USER)

    assert count.sql.startswith("SELECT COUNT(*)::INT AS total FROM tasks t WHERE")
    assert "ORDER BY" not in count.sql
    assert count.predicates == full.predicates
    assert count.params == full.params[1:]


def test_member_listing_carries_project_statuses() -> None:
    plan = plan_task_query(FilterCriteria(filter_by="member"), scope_id="member-1", user_id=None)

    assert "AS statuses" in plan.sql
    assert plan.extras["statuses"] is True


def test_custom_columns_can_be_left_out() -> None:
    plan = plan_task_query(
        FilterCriteria(include_custom_columns=False),
        scope_id=PROJECT,
        user_id=USER,
    )

    assert "custom_column_values" not in plan.sql
    assert plan.extras["custom_columns"] is False


def test_escape_like() -> None:
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"
    assert escape_like("plain") == "plain"
