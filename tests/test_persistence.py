import json
from datetime import date

from laneplan.persistence import DEFAULT_DB_FILE, Store, default_db_path
from laneplan.planner import Planner


def test_missing_file_loads_none(tmp_path):
    assert Store(tmp_path / "nope.json").load() is None


def test_round_trip(tmp_path):
    planner = Planner()
    planner.set_working_days([0, 1, 2, 3, 4])
    alice = planner.add_user("Alice", "#FF0000")
    project = planner.add_project(
        "Website", date(2026, 2, 16), 5, capacity_percent=50, user_id=alice.id,
        custom_properties={"client": "ACME"},
    )
    planner.split_project(project.id)

    store = Store(tmp_path / "planner.json")
    store.save(planner)
    loaded = store.load()

    assert loaded.config == planner.config
    assert loaded.users == planner.users
    assert loaded.projects == planner.projects


def test_id_counters_round_trip(tmp_path):
    planner = Planner()
    planner.add_user("Alice")
    bob = planner.add_user("Bob")
    planner.remove_user(bob.id)

    store = Store(tmp_path / "planner.json")
    store.save(planner)
    loaded = store.load()
    assert loaded.id_counters == {"U": 2}
    assert loaded.add_user("Carol").id == "U-3"


def test_stale_end_date_recomputed_on_load(tmp_path):
    path = tmp_path / "planner.json"
    path.write_text(json.dumps({
        "config": {"working_days": [1, 2, 3, 4, 5]},
        "users": [],
        "projects": [{
            "id": "P-1",
            "name": "Edited by hand",
            "start_date": "2026-02-16",
            "end_date": "2026-01-01",
            "duration_days": 5,
        }],
    }))
    planner = Store(path).load()
    assert planner.projects[0].end_date == date(2026, 2, 20)


def test_default_db_path(monkeypatch, tmp_path):
    monkeypatch.delenv("LANEPLAN_DB", raising=False)
    assert str(default_db_path()) == DEFAULT_DB_FILE

    target = tmp_path / "custom.json"
    monkeypatch.setenv("LANEPLAN_DB", str(target))
    assert Store().db_path == target
