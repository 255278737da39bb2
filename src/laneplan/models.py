"""User, project and planner configuration models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from laneplan.calendar import (
    DEFAULT_WORKING_DAYS,
    parse_date,
    to_input_date,
    validate_working_days,
)
from laneplan.errors import ConfigurationError


@dataclass
class PlannerConfig:
    """Planner-level settings stored alongside users and projects."""

    working_days: frozenset[int] = DEFAULT_WORKING_DAYS
    timeline_start: date = date(2026, 1, 1)
    timeline_end: date = date(2026, 12, 31)
    dark_mode: bool = False

    def __post_init__(self) -> None:
        self.working_days = validate_working_days(self.working_days)
        if self.timeline_end < self.timeline_start:
            raise ConfigurationError(
                f"Timeline end {self.timeline_end} is before its start {self.timeline_start}"
            )

    def to_dict(self) -> dict:
        return {
            "working_days": sorted(self.working_days),
            "timeline_start": to_input_date(self.timeline_start),
            "timeline_end": to_input_date(self.timeline_end),
            "dark_mode": self.dark_mode,
        }

    @classmethod
    def from_dict(cls, d: dict) -> PlannerConfig:
        defaults = cls()
        return cls(
            working_days=frozenset(d.get("working_days", defaults.working_days)),
            timeline_start=parse_date(d["timeline_start"]) if "timeline_start" in d else defaults.timeline_start,
            timeline_end=parse_date(d["timeline_end"]) if "timeline_end" in d else defaults.timeline_end,
            dark_mode=d.get("dark_mode", False),
        )


@dataclass
class User:
    """A person projects can be assigned to."""

    id: str
    name: str
    color: str = "#7BA3D1"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, d: dict) -> User:
        return cls(id=d["id"], name=d["name"], color=d.get("color", "#7BA3D1"))


@dataclass
class Project:
    """A time-boxed block of work on the planner timeline.

    ``end_date`` is derived from the scheduling fields and the active
    working-day set; the Planner keeps it in sync.
    """

    id: str
    name: str
    start_date: date
    duration_days: float
    end_date: date
    user_id: str | None = None  # None = unassigned
    buffer_percent: float = 0.0
    capacity_percent: float = 100.0
    color: str = "#42A5F5"
    z_index: int = 1
    custom_properties: dict[str, str] = field(default_factory=dict)
    parent_project_id: str | None = None  # shared by every segment of a split
    original_duration_days: float | None = None  # duration before the first split

    @property
    def is_split(self) -> bool:
        return self.parent_project_id is not None

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "user_id": self.user_id,
            "start_date": to_input_date(self.start_date),
            "end_date": to_input_date(self.end_date),
            "duration_days": self.duration_days,
            "buffer_percent": self.buffer_percent,
            "capacity_percent": self.capacity_percent,
            "color": self.color,
            "z_index": self.z_index,
            "custom_properties": self.custom_properties,
        }
        if self.parent_project_id is not None:
            d["parent_project_id"] = self.parent_project_id
            d["original_duration_days"] = self.original_duration_days
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Project:
        start = parse_date(d["start_date"])
        return cls(
            id=d["id"],
            name=d["name"],
            start_date=start,
            duration_days=d["duration_days"],
            # Recomputed by the Planner; a stale value must never win.
            end_date=parse_date(d["end_date"]) if d.get("end_date") else start,
            user_id=d.get("user_id"),
            buffer_percent=d.get("buffer_percent", 0.0),
            capacity_percent=d.get("capacity_percent", 100.0),
            color=d.get("color", "#42A5F5"),
            z_index=d.get("z_index", 1),
            custom_properties=dict(d.get("custom_properties", {})),
            parent_project_id=d.get("parent_project_id"),
            original_duration_days=d.get("original_duration_days"),
        )
