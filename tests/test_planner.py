from datetime import date

import pytest

from laneplan.errors import ConfigurationError, InvalidInputError
from laneplan.models import PlannerConfig
from laneplan.planner import COLOR_PALETTE, Planner

MONDAY = date(2026, 2, 16)


def add(planner, name="Test Project", duration=5, **kwargs):
    return planner.add_project(name, kwargs.pop("start", MONDAY), duration, **kwargs)


def test_color_palette():
    assert len(COLOR_PALETTE) == 16
    assert all(c.startswith("#") and len(c) == 7 for c in COLOR_PALETTE)


def test_empty_planner():
    planner = Planner()
    assert planner.users == []
    assert planner.projects == []
    assert planner.config.timeline_start == date(2026, 1, 1)


def test_weekdays_for_timeline():
    planner = Planner()
    assert len(planner.weekdays) == 261
    assert all(d.isoweekday() < 6 for d in planner.weekdays)


def test_add_user():
    planner = Planner()
    alice = planner.add_user("Alice")
    bob = planner.add_user("Bob", "#FF0000")
    assert alice.id == "U-1"
    assert bob.id == "U-2"
    assert bob.color == "#FF0000"
    assert alice.color.startswith("#") and len(alice.color) == 7


def test_remove_user_unassigns_projects():
    planner = Planner()
    alice = planner.add_user("Alice")
    add(planner, user_id=alice.id)

    assert planner.remove_user(alice.id)
    assert planner.users == []
    assert len(planner.projects) == 1
    assert planner.projects[0].user_id is None


def test_removed_user_id_is_not_reused():
    planner = Planner()
    planner.add_user("Alice")
    bob = planner.add_user("Bob")
    planner.remove_user(bob.id)
    assert planner.add_user("Carol").id == "U-3"


def test_deleted_project_id_is_not_reused():
    planner = Planner()
    add(planner)
    second = add(planner)
    planner.delete_project(second.id)
    assert add(planner).id == "P-3"


def test_id_counters_seed_numbering():
    planner = Planner(id_counters={"P": 7})
    assert add(planner).id == "P-8"
    assert planner.add_user("Alice").id == "U-1"
    assert planner.id_counters == {"P": 8, "U": 1}


def test_remove_unknown_user():
    planner = Planner()
    planner.add_user("Alice")
    assert not planner.remove_user("U-99")
    assert len(planner.users) == 1


def test_add_project_computes_end_date():
    planner = Planner()
    project = add(planner)
    assert project.id == "P-1"
    assert project.end_date == date(2026, 2, 20)
    assert project.z_index == 1
    assert project.color == COLOR_PALETTE[0]


@pytest.mark.parametrize("duration", [0, -1, 1.25])
def test_add_project_rejects_bad_duration(duration):
    with pytest.raises(InvalidInputError):
        add(Planner(), duration=duration)


def test_add_project_rejects_zero_capacity():
    with pytest.raises(InvalidInputError):
        add(Planner(), capacity_percent=0)


def test_update_name():
    planner = Planner()
    project = add(planner, name="Old Name")
    planner.update_project(project.id, name="New Name")
    assert planner.projects[0].name == "New Name"


def test_update_duration_recomputes_end_date():
    planner = Planner()
    project = add(planner)
    planner.update_project(project.id, duration_days=10)
    assert planner.projects[0].end_date == date(2026, 2, 27)


def test_update_start_recomputes_end_date():
    planner = Planner()
    project = add(planner)
    planner.update_project(project.id, start_date=date(2026, 2, 17))
    # Tue 17 + 5 working days = Mon 23
    assert planner.projects[0].end_date == date(2026, 2, 23)


def test_update_capacity_recomputes_end_date():
    planner = Planner()
    project = add(planner)
    planner.update_project(project.id, capacity_percent=50)
    assert planner.projects[0].end_date == date(2026, 2, 27)


def test_update_unknown_project():
    assert Planner().update_project("P-404", name="Test") is None


def test_update_rejects_invalid_values_without_mutating():
    planner = Planner()
    project = add(planner)
    with pytest.raises(InvalidInputError):
        planner.update_project(project.id, capacity_percent=0)
    with pytest.raises(InvalidInputError):
        planner.update_project(project.id, end_date=date(2026, 3, 1))
    assert project.capacity_percent == 100
    assert project.end_date == date(2026, 2, 20)


def test_update_user_to_none():
    planner = Planner()
    alice = planner.add_user("Alice")
    project = add(planner, user_id=alice.id)
    planner.update_project(project.id, user_id=None)
    assert planner.projects[0].user_id is None


def test_delete_project():
    planner = Planner()
    project = add(planner)
    assert planner.delete_project(project.id)
    assert planner.projects == []
    assert not planner.delete_project("P-404")


def test_get_projects_for_user():
    planner = Planner()
    alice = planner.add_user("Alice")
    bob = planner.add_user("Bob")
    add(planner, name="Alice 1", user_id=alice.id)
    add(planner, name="Bob", user_id=bob.id)
    add(planner, name="Alice 2", user_id=alice.id, start=date(2026, 2, 23))
    add(planner, name="Unassigned")

    assert [p.name for p in planner.get_projects_for_user(alice.id)] == ["Alice 1", "Alice 2"]
    assert [p.name for p in planner.get_projects_for_user(None)] == ["Unassigned"]
    assert planner.get_projects_for_user("U-404") == []


def test_get_project_unknown_raises():
    with pytest.raises(KeyError):
        Planner().get_project("P-404")


def test_set_working_days_recomputes_end_dates():
    planner = Planner()
    project = add(planner, start=date(2026, 2, 13), duration=3)
    assert project.end_date == date(2026, 2, 17)

    planner.set_working_days(range(7))
    assert project.end_date == date(2026, 2, 15)


def test_set_working_days_rejects_empty():
    planner = Planner()
    with pytest.raises(ConfigurationError):
        planner.set_working_days([])
    assert planner.working_days == frozenset({1, 2, 3, 4, 5})


def test_set_timeline_rejects_reversed_range():
    with pytest.raises(ConfigurationError):
        Planner().set_timeline(date(2026, 5, 1), date(2026, 4, 1))


def test_constructor_recomputes_stale_end_dates():
    source = Planner()
    project = add(source)
    project.end_date = date(2030, 1, 1)
    planner = Planner(PlannerConfig(), [], [project])
    assert planner.projects[0].end_date == date(2026, 2, 20)


def test_lanes_for_user():
    planner = Planner()
    alice = planner.add_user("Alice")
    a = add(planner, user_id=alice.id, capacity_percent=50)
    b = add(planner, user_id=alice.id, capacity_percent=50, start=date(2026, 2, 18))
    c = add(planner, user_id=alice.id, start=date(2026, 2, 18))
    add(planner)  # unassigned, ignored

    lanes = planner.lanes_for_user(alice.id)
    assert set(lanes) == {a.id, b.id, c.id}
    assert lanes[a.id].lane == lanes[b.id].lane == 0
    assert lanes[b.id].offset == 50
    assert lanes[c.id].lane == 1
    assert lanes[c.id].max_lanes == 2


# ---------------------------------------------------------------------------
# Split projects
# ---------------------------------------------------------------------------


def test_split_reduces_duration_by_one_day():
    planner = Planner()
    project = add(planner)
    planner.split_project(project.id)
    assert len(planner.projects) == 2
    assert planner.projects[0].duration_days == 4
    assert planner.projects[0].end_date == date(2026, 2, 19)


def test_split_creates_one_day_segment():
    planner = Planner()
    project = add(planner, color="#FF0000")
    segment = planner.split_project(project.id)
    assert planner.projects[1] is segment
    assert segment.duration_days == 1
    assert segment.name == "Test Project"
    assert segment.color == "#FF0000"


def test_split_segment_starts_day_after_parent_ends():
    planner = Planner()
    project = add(planner, duration=3)
    segment = planner.split_project(project.id)
    # Parent now Mon-Tue, segment starts Wednesday
    assert project.end_date == date(2026, 2, 17)
    assert segment.start_date == date(2026, 2, 18)


def test_split_sets_group_fields():
    planner = Planner()
    project = add(planner)
    planner.split_project(project.id)
    assert [p.parent_project_id for p in planner.projects] == [project.id, project.id]
    assert [p.original_duration_days for p in planner.projects] == [5, 5]


def test_split_too_short():
    planner = Planner()
    short = add(planner, duration=0.5)
    single = add(planner, duration=1)
    assert planner.split_project(short.id) is None
    assert planner.split_project(single.id) is None
    assert len(planner.projects) == 2
    assert short.duration_days == 0.5
    assert not short.is_split


def test_split_unknown_project():
    assert Planner().split_project("P-404") is None


def test_split_copies_properties():
    planner = Planner()
    alice = planner.add_user("Alice")
    project = add(
        planner,
        user_id=alice.id,
        buffer_percent=25,
        capacity_percent=75,
        z_index=3,
        custom_properties={"priority": "high"},
    )
    segment = planner.split_project(project.id)
    assert segment.user_id == alice.id
    assert segment.buffer_percent == 25
    assert segment.capacity_percent == 75
    assert segment.z_index == 3
    assert segment.custom_properties == {"priority": "high"}
    assert segment.custom_properties is not project.custom_properties


def test_split_syncs_name_across_segments():
    planner = Planner()
    project = add(planner, name="Original Name")
    planner.split_project(project.id)
    planner.split_project(project.id)

    planner.update_project(project.id, name="Updated Name")
    assert [p.name for p in planner.projects] == ["Updated Name"] * 3


def test_split_syncs_color_and_custom_properties():
    planner = Planner()
    project = add(planner)
    segment = planner.split_project(project.id)

    planner.update_project(segment.id, color="#00FF00", custom_properties={"client": "ACME"})
    assert project.color == "#00FF00"
    assert project.custom_properties == {"client": "ACME"}


def test_split_does_not_sync_user_or_dates():
    planner = Planner()
    alice = planner.add_user("Alice")
    bob = planner.add_user("Bob")
    project = add(planner, user_id=alice.id)
    segment = planner.split_project(project.id)

    planner.update_project(segment.id, user_id=bob.id, start_date=date(2026, 3, 2))
    assert project.user_id == alice.id
    assert segment.user_id == bob.id
    assert project.start_date == MONDAY


def test_get_split_projects():
    planner = Planner()
    project = add(planner)
    assert planner.get_split_projects(project.id) == [project]

    planner.split_project(project.id)
    planner.split_project(project.id)
    assert len(planner.get_split_projects(project.id)) == 3
    assert planner.get_split_projects("P-404") == []


def test_deleting_last_sibling_restores_normal_project():
    planner = Planner()
    project = add(planner)
    segment = planner.split_project(project.id)
    assert project.parent_project_id == project.id

    planner.delete_project(segment.id)
    assert len(planner.projects) == 1
    assert project.parent_project_id is None
    assert project.original_duration_days is None
    assert project.duration_days == 5
    assert project.end_date == date(2026, 2, 20)


def test_deleting_one_of_three_segments_keeps_split():
    planner = Planner()
    project = add(planner)
    planner.split_project(project.id)
    planner.split_project(project.id)

    planner.delete_project(planner.projects[2].id)
    assert len(planner.projects) == 2
    assert all(p.parent_project_id == project.id for p in planner.projects)


def test_split_of_segment_joins_existing_group():
    planner = Planner()
    project = add(planner)
    planner.update_project(project.id, duration_days=6)
    first = planner.split_project(project.id)
    planner.update_project(first.id, duration_days=3)
    second = planner.split_project(first.id)

    assert second.parent_project_id == project.id
    assert second.original_duration_days == 6
    assert len(planner.get_split_projects(project.id)) == 3
