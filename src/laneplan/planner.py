"""The owning store: users, projects and the operations the UI performs on them.

Every mutation that touches a scheduling field goes through here so that
``Project.end_date`` is recomputed and split segments stay consistent.
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from datetime import date, timedelta

from loguru import logger

from laneplan.calendar import enumerate_working_days, validate_working_days
from laneplan.errors import ConfigurationError, InvalidInputError
from laneplan.models import PlannerConfig, Project, User
from laneplan.scheduler import (
    LaneAssignment,
    assign_lanes,
    project_end_date,
    validate_schedule_inputs,
)

COLOR_PALETTE = [
    "#EF5350",  # Red
    "#EC407A",  # Pink
    "#AB47BC",  # Purple
    "#7E57C2",  # Deep Purple
    "#5C6BC0",  # Indigo
    "#42A5F5",  # Blue
    "#29B6F6",  # Light Blue
    "#26C6DA",  # Cyan
    "#26A69A",  # Teal
    "#66BB6A",  # Green
    "#9CCC65",  # Light Green
    "#D4E157",  # Lime
    "#FFEE58",  # Yellow
    "#FFA726",  # Orange
    "#FF7043",  # Deep Orange
    "#8D6E63",  # Brown
]

# Fields copied to every segment of a split when one of them changes.
SYNCED_SPLIT_FIELDS = ("name", "color", "custom_properties")

SCHEDULING_FIELDS = ("start_date", "duration_days", "buffer_percent", "capacity_percent")

UPDATABLE_FIELDS = frozenset(
    {"name", "user_id", "color", "z_index", "custom_properties", *SCHEDULING_FIELDS}
)


def validate_duration(duration_days: float) -> None:
    """Durations are positive and come in half-day steps."""
    if duration_days <= 0:
        raise InvalidInputError(f"duration_days must be > 0, got {duration_days}")
    if (duration_days * 2) != int(duration_days * 2):
        raise InvalidInputError(f"duration_days must be a multiple of 0.5, got {duration_days}")


def _random_color() -> str:
    return f"#{random.randrange(0x1000000):06x}"


def _highest_id_number(prefix: str, existing: Iterable[str]) -> int:
    numbers = [
        int(k.split("-", 1)[1])
        for k in existing
        if k.startswith(f"{prefix}-") and k.split("-", 1)[1].isdigit()
    ]
    return max(numbers, default=0)


class Planner:
    """Holds users and projects for one planner file."""

    def __init__(
        self,
        config: PlannerConfig | None = None,
        users: Iterable[User] | None = None,
        projects: Iterable[Project] | None = None,
        id_counters: dict[str, int] | None = None,
    ):
        self.config = config or PlannerConfig()
        self.users: list[User] = list(users or [])
        self.projects: list[Project] = list(projects or [])
        # Highest number handed out per id prefix, so deleted ids are not reused.
        self.id_counters: dict[str, int] = dict(id_counters or {})
        self.recompute_end_dates()

    def _next_id(self, prefix: str, existing: Iterable[str]) -> str:
        number = max(self.id_counters.get(prefix, 0), _highest_id_number(prefix, existing)) + 1
        self.id_counters[prefix] = number
        return f"{prefix}-{number}"

    # -- configuration -----------------------------------------------------

    @property
    def working_days(self) -> frozenset[int]:
        return self.config.working_days

    @property
    def weekdays(self) -> list[date]:
        """Working days of the visible timeline."""
        return enumerate_working_days(
            self.config.timeline_start, self.config.timeline_end, self.working_days
        )

    def set_working_days(self, days: Iterable[int]) -> None:
        self.config.working_days = validate_working_days(days)
        logger.info(f"Working days set to {sorted(self.config.working_days)}")
        self.recompute_end_dates()

    def set_timeline(self, start: date, end: date) -> None:
        if end < start:
            raise ConfigurationError(f"Timeline end {end} is before its start {start}")
        self.config.timeline_start = start
        self.config.timeline_end = end

    def recompute_end_dates(self) -> None:
        for project in self.projects:
            self._refresh(project)

    def _refresh(self, project: Project) -> None:
        project.end_date = project_end_date(project, self.working_days)

    # -- users -------------------------------------------------------------

    def get_user(self, user_id: str) -> User:
        for user in self.users:
            if user.id == user_id:
                return user
        raise KeyError(user_id)

    def add_user(self, name: str, color: str | None = None) -> User:
        user = User(
            id=self._next_id("U", (u.id for u in self.users)),
            name=name,
            color=color or _random_color(),
        )
        self.users.append(user)
        return user

    def remove_user(self, user_id: str) -> bool:
        """Remove a user; their projects stay on the board as unassigned."""
        before = len(self.users)
        self.users = [u for u in self.users if u.id != user_id]
        if len(self.users) == before:
            return False
        for project in self.projects:
            if project.user_id == user_id:
                project.user_id = None
        logger.info(f"Removed user {user_id}")
        return True

    # -- projects ----------------------------------------------------------

    def _find_project(self, project_id: str) -> Project | None:
        return next((p for p in self.projects if p.id == project_id), None)

    def get_project(self, project_id: str) -> Project:
        project = self._find_project(project_id)
        if project is None:
            raise KeyError(project_id)
        return project

    def get_projects_for_user(self, user_id: str | None) -> list[Project]:
        return [p for p in self.projects if p.user_id == user_id]

    def add_project(
        self,
        name: str,
        start_date: date,
        duration_days: float,
        buffer_percent: float = 0.0,
        capacity_percent: float = 100.0,
        user_id: str | None = None,
        color: str | None = None,
        z_index: int = 1,
        custom_properties: dict[str, str] | None = None,
    ) -> Project:
        validate_duration(duration_days)
        validate_schedule_inputs(duration_days, buffer_percent, capacity_percent)
        project = Project(
            id=self._next_id("P", (p.id for p in self.projects)),
            name=name,
            start_date=start_date,
            duration_days=duration_days,
            end_date=start_date,
            user_id=user_id,
            buffer_percent=buffer_percent,
            capacity_percent=capacity_percent,
            color=color or COLOR_PALETTE[len(self.projects) % len(COLOR_PALETTE)],
            z_index=z_index,
            custom_properties=dict(custom_properties or {}),
        )
        self._refresh(project)
        self.projects.append(project)
        return project

    def update_project(self, project_id: str, **changes) -> Project | None:
        """Apply *changes* to a project. Returns None for an unknown id.

        End date is recomputed when a scheduling field changed; name, color
        and custom properties are then propagated to every split sibling.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        project = self._find_project(project_id)
        if project is None:
            return None

        duration = changes.get("duration_days", project.duration_days)
        if "duration_days" in changes:
            validate_duration(duration)
        validate_schedule_inputs(
            duration,
            changes.get("buffer_percent", project.buffer_percent),
            changes.get("capacity_percent", project.capacity_percent),
        )

        for key, value in changes.items():
            if key == "custom_properties":
                value = dict(value or {})
            setattr(project, key, value)

        if any(f in changes for f in SCHEDULING_FIELDS):
            self._refresh(project)
            logger.debug(f"Recomputed {project.id} end date: {project.end_date}")

        if project.parent_project_id is not None:
            self._sync_split_siblings(project, [f for f in SYNCED_SPLIT_FIELDS if f in changes])
        return project

    def _sync_split_siblings(self, source: Project, fields: list[str]) -> None:
        if not fields:
            return
        for sibling in self.get_split_projects(source.id):
            if sibling is source:
                continue
            for name in fields:
                value = getattr(source, name)
                setattr(sibling, name, dict(value) if isinstance(value, dict) else value)

    def delete_project(self, project_id: str) -> bool:
        """Delete a project. When only one segment of a split is left it
        becomes a normal project again with its original duration."""
        project = self._find_project(project_id)
        if project is None:
            return False
        self.projects.remove(project)
        logger.info(f"Deleted project {project_id}")

        if project.parent_project_id is not None:
            remaining = [p for p in self.projects if p.parent_project_id == project.parent_project_id]
            if len(remaining) == 1:
                last = remaining[0]
                if last.original_duration_days is not None:
                    last.duration_days = last.original_duration_days
                last.parent_project_id = None
                last.original_duration_days = None
                self._refresh(last)
                logger.info(f"{last.id} is no longer split")
        return True

    def split_project(self, project_id: str) -> Project | None:
        """Move the last day of a project into a new one-day segment.

        The new segment starts the calendar day after the shortened project
        ends. Returns None when the project is unknown or too short to split.
        """
        project = self._find_project(project_id)
        if project is None or project.duration_days <= 1:
            return None

        root_id = project.parent_project_id or project.id
        if project.original_duration_days is None:
            project.original_duration_days = project.duration_days
        project.parent_project_id = root_id
        project.duration_days -= 1
        self._refresh(project)

        segment = Project(
            id=self._next_id("P", (p.id for p in self.projects)),
            name=project.name,
            start_date=project.end_date + timedelta(days=1),
            duration_days=1,
            end_date=project.end_date,
            user_id=project.user_id,
            buffer_percent=project.buffer_percent,
            capacity_percent=project.capacity_percent,
            color=project.color,
            z_index=project.z_index,
            custom_properties=dict(project.custom_properties),
            parent_project_id=root_id,
            original_duration_days=project.original_duration_days,
        )
        self._refresh(segment)
        self.projects.append(segment)
        logger.info(f"Split {project.id}: new segment {segment.id} starts {segment.start_date}")
        return segment

    def get_split_projects(self, project_id: str) -> list[Project]:
        """All segments sharing the project's split group (just the project when unsplit)."""
        project = self._find_project(project_id)
        if project is None:
            return []
        if project.parent_project_id is None:
            return [project]
        return [p for p in self.projects if p.parent_project_id == project.parent_project_id]

    # -- scheduling views ----------------------------------------------------

    def lanes_for_user(self, user_id: str | None) -> dict[str, LaneAssignment]:
        return assign_lanes(self.get_projects_for_user(user_id), self.working_days)
