from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from tasklist_api.api.main import create_app
from tasklist_api.config.settings import Settings
from tasklist_api.core.service import TaskListService
from tasklist_api.storage.memory import InMemoryTaskStore

TEAM_ID = "7d5d2b3c-4a0e-4f6e-9a53-1f0c6a1c0b11"
USER_ID = "0b8f4c52-93d4-4c61-8d1e-7d2a1e9c4f20"


@pytest.fixture()
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture()
def seeded(store: InMemoryTaskStore) -> SimpleNamespace:
    """Two projects with statuses, priorities, phases, labels, and a small task tree.

    Atlas (ATL):
      brief    todo   high    Design  [bug]  Ada      (has one done sub-task)
      layout   doing  low     Build          Grace
      release  done   medium  -
      old      todo   -       -       archived
      sub      done   -       -       child of brief
    Orion (ORI):
      orion    todo                          Ada
    """
    atlas = store.add_project("Atlas", "ATL")
    orion = store.add_project("Orion", "ORI")

    todo = store.add_status(atlas, "To Do", "todo")
    doing = store.add_status(atlas, "In Progress", "doing")
    done = store.add_status(atlas, "Done", "done")
    orion_todo = store.add_status(orion, "Backlog", "todo")

    low = store.add_priority("Low", 0)
    medium = store.add_priority("Medium", 1)
    high = store.add_priority("High", 2)

    design = store.add_phase(atlas, "Design")
    build = store.add_phase(atlas, "Build")

    bug = store.add_label(TEAM_ID, "bug")
    ui = store.add_label(TEAM_ID, "ui")

    ada = store.add_member("Ada Lovelace", user_id=USER_ID, team_id=TEAM_ID)
    grace = store.add_member("Grace Hopper", team_id=TEAM_ID)

    brief = store.add_task(
        atlas,
        "Write brief",
        status_id=todo,
        priority_id=high,
        phase_id=design,
        labels=(bug,),
        assignees=(ada,),
        total_minutes=90,
    )
    layout = store.add_task(
        atlas,
        "Draft layout",
        status_id=doing,
        priority_id=low,
        phase_id=build,
        assignees=(grace,),
    )
    release = store.add_task(atlas, "Ship release", status_id=done, priority_id=medium)
    old = store.add_task(atlas, "Old task", status_id=todo, archived=True)
    sub = store.add_task(atlas, "Sub of brief", status_id=done, parent_task_id=brief)
    orion_task = store.add_task(orion, "Orion kickoff", status_id=orion_todo, assignees=(ada,))

    return SimpleNamespace(
        team_id=TEAM_ID,
        user_id=USER_ID,
        atlas=atlas,
        orion=orion,
        todo=todo,
        doing=doing,
        done=done,
        orion_todo=orion_todo,
        low=low,
        medium=medium,
        high=high,
        design=design,
        build=build,
        bug=bug,
        ui=ui,
        ada=ada,
        grace=grace,
        brief=brief,
        layout=layout,
        release=release,
        old=old,
        sub=sub,
        orion_task=orion_task,
    )


@pytest.fixture()
def service(store: InMemoryTaskStore) -> TaskListService:
    return TaskListService(store, search_limit=5)


@pytest.fixture()
def client(store: InMemoryTaskStore, seeded: SimpleNamespace) -> TestClient:
    settings = Settings(_env_file=None, database_url="")
    app = create_app(store=store, settings_override=settings)
    with TestClient(app) as test_client:
        yield test_client
