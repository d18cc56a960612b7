from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from tasklist_api.errors import StoreError
from tasklist_api.storage.memory import InMemoryTaskStore


def headers(seeded: SimpleNamespace) -> dict[str, str]:
    return {"X-User-Id": seeded.user_id, "X-Team-Id": seeded.team_id}


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "tasklist-api"}


def test_task_groups_by_status(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.get(f"/projects/{seeded.atlas}/task-groups", headers=headers(seeded))

    assert response.status_code == 200
    groups = response.json()
    assert [g["name"] for g in groups] == ["To Do", "In Progress", "Done"]
    assert groups[0]["tasks"][0]["id"] == seeded.brief
    assert groups[0]["todo_progress"] == 100


def test_task_groups_accept_space_separated_filters(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.get(
        f"/projects/{seeded.atlas}/task-groups",
        params={"statuses": f"{seeded.todo} {seeded.doing}", "group": "priority"},
        headers=headers(seeded),
    )

    assert response.status_code == 200
    tasks = [t["id"] for g in response.json() for t in g["tasks"]]
    assert sorted(tasks) == sorted([seeded.brief, seeded.layout])


def test_task_groups_count_mode(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.get(f"/projects/{seeded.atlas}/task-groups", params={"count": "true"})

    assert response.status_code == 200
    assert response.json() == {"total": 3}


def test_task_groups_with_parent_returns_flat_children(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.get(f"/projects/{seeded.atlas}/task-groups", params={"parent_task": seeded.brief})

    assert response.status_code == 200
    assert [t["id"] for t in response.json()] == [seeded.sub]


@pytest.mark.parametrize("params", [{"group": "owner"}, {"field": "name; DROP TABLE tasks"}, {"order": "sideways"}])
def test_invalid_list_parameters_are_rejected(
    client: TestClient,
    seeded: SimpleNamespace,
    params: dict[str, str],
) -> None:
    response = client.get(f"/projects/{seeded.atlas}/task-groups", params=params)

    assert response.status_code == 400
    assert response.json()["detail"]


def test_project_tasks_archived(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.get(f"/projects/{seeded.atlas}/tasks", params={"archived": "true"})

    assert response.status_code == 200
    assert [t["id"] for t in response.json()] == [seeded.old]


def test_member_tasks_span_projects(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.get(f"/members/{seeded.ada}/tasks", headers=headers(seeded))

    assert response.status_code == 200
    assert [t["project_name"] for t in response.json()] == ["Atlas", "Orion"]


def test_search_tasks(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.get(
        "/tasks/search",
        params={"projectId": seeded.atlas, "searchQuery": "draft", "taskId": seeded.brief},
    )

    assert response.status_code == 200
    assert response.json() == [{"value": seeded.layout, "label": "Draft layout", "task_key": "ATL-2"}]


def test_get_task(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.get(f"/tasks/{seeded.brief}", headers=headers(seeded))

    assert response.status_code == 200
    payload = response.json()
    assert payload["task_key"] == "ATL-1"
    assert payload["names"] == ["Ada Lovelace"]


def test_get_missing_task_is_404(client: TestClient) -> None:
    response = client.get("/tasks/does-not-exist")

    assert response.status_code == 404
    assert "not found" in response.json()["detail"]


def test_dependency_status(client: TestClient, store: InMemoryTaskStore, seeded: SimpleNamespace) -> None:
    url = f"/tasks/{seeded.release}/dependency-status"

    assert client.get(url, params={"statusId": seeded.done}).json() == {"can_continue": True}

    store.add_dependency(seeded.release, seeded.layout)

    assert client.get(url, params={"statusId": seeded.done}).json() == {"can_continue": False}
    assert client.get(url, params={"statusId": seeded.doing}).json() == {"can_continue": True}
    assert client.get(url, params={"statusId": seeded.orion_todo}).status_code == 404


def test_convert_to_subtask_and_back(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.put(
        "/tasks/convert-to-subtask",
        json={
            "id": seeded.release,
            "project_id": seeded.atlas,
            "parent_task_id": seeded.brief,
            "group_by": "status",
            "to_group_id": seeded.doing,
        },
    )
    assert response.status_code == 200
    assert response.json()["parent_task_id"] == seeded.brief
    assert response.json()["status"] == seeded.doing

    response = client.put(
        "/tasks/convert-to-task",
        json={"id": seeded.release, "project_id": seeded.atlas},
    )
    assert response.status_code == 200
    assert response.json()["parent_task_id"] is None
    assert response.json()["is_sub_task"] is False


def test_convert_to_subtask_rejects_bad_requests(client: TestClient, seeded: SimpleNamespace) -> None:
    base = {"id": seeded.layout, "project_id": seeded.atlas}

    own_parent = client.put("/tasks/convert-to-subtask", json={**base, "parent_task_id": seeded.layout})
    unknown_group = client.put(
        "/tasks/convert-to-subtask",
        json={**base, "parent_task_id": seeded.brief, "group_by": "owner"},
    )
    nested = client.put("/tasks/convert-to-subtask", json={**base, "parent_task_id": seeded.sub})

    assert own_parent.status_code == 400
    assert unknown_group.status_code == 400
    assert nested.status_code == 400


def test_assign_labels(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.put(f"/tasks/{seeded.brief}/labels", json={"labels": [seeded.ui]})

    assert response.status_code == 200
    assert [label["name"] for label in response.json()] == ["bug", "ui"]


def test_custom_column_value(client: TestClient, store: InMemoryTaskStore, seeded: SimpleNamespace) -> None:
    store.add_custom_column(seeded.atlas, "done_flag", "checkbox")
    url = f"/tasks/{seeded.brief}/custom-column"

    ok = client.put(url, json={"project_id": seeded.atlas, "column_key": "done_flag", "value": True})
    missing = client.put(url, json={"project_id": seeded.atlas, "value": True})
    unknown = client.put(url, json={"project_id": seeded.atlas, "column_key": "nope", "value": True})

    assert ok.status_code == 200
    assert ok.json() == {"task_id": seeded.brief, "column_key": "done_flag", "value": True}
    assert missing.status_code == 400
    assert unknown.status_code == 404


def test_subscribers(client: TestClient, store: InMemoryTaskStore, seeded: SimpleNamespace) -> None:
    store.add_subscriber(seeded.layout, "Grace Hopper")

    response = client.get(f"/tasks/{seeded.layout}/subscribers")

    assert response.status_code == 200
    assert [s["name"] for s in response.json()] == ["Grace Hopper"]
    assert response.json()[0]["color_code"]


def test_store_failure_is_500(
    client: TestClient,
    store: InMemoryTaskStore,
    seeded: SimpleNamespace,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def broken(_plan: object) -> list:
        raise StoreError("Task store fetch_all failed")

    monkeypatch.setattr(store, "fetch_tasks", broken)

    response = client.get(f"/projects/{seeded.atlas}/tasks")

    assert response.status_code == 500
    assert response.json() == {"detail": "Task store fetch_all failed"}


def test_assignment_status(client: TestClient, seeded: SimpleNamespace) -> None:
    assigned = client.get(f"/tasks/{seeded.brief}/assignment", headers=headers(seeded))
    not_assigned = client.get(f"/tasks/{seeded.layout}/assignment", headers=headers(seeded))
    no_team = client.get(f"/tasks/{seeded.brief}/assignment", headers={"X-User-Id": seeded.user_id})

    assert assigned.json() == {"assigned": True}
    assert not_assigned.json() == {"assigned": False}
    assert no_team.status_code == 400


def test_label_groups_without_team_header_are_rejected(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.get(f"/projects/{seeded.atlas}/task-groups", params={"group": "labels"})

    assert response.status_code == 400
