"""End-date computation and capacity-aware lane assignment over working days."""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from fractions import Fraction
from itertools import combinations

import networkx as nx
from loguru import logger

from laneplan.calendar import (
    DEFAULT_WORKING_DAYS,
    count_working_days,
    iter_working_days,
    validate_working_days,
    weekday_index,
)
from laneplan.errors import InvalidInputError
from laneplan.models import Project

FULL_CAPACITY = 100.0

# Float tolerance when comparing summed capacities against 100%.
_EPS = 1e-9


@dataclass(frozen=True)
class LaneAssignment:
    """Where a project is drawn: its lane, the lane count of the whole run, and
    the capacity already used in that lane by earlier overlapping projects."""

    lane: int
    max_lanes: int
    offset: float


def _exact(value: float) -> Fraction:
    # Built from the decimal text so 0.75 is 3/4, not the nearest binary float.
    return Fraction(str(value))


def validate_schedule_inputs(
    duration_days: float,
    buffer_percent: float,
    capacity_percent: float,
) -> None:
    """Raise InvalidInputError for values the end-date formula can't use."""
    if duration_days < 0:
        raise InvalidInputError(f"duration_days must be >= 0, got {duration_days}")
    if buffer_percent < 0:
        raise InvalidInputError(f"buffer_percent must be >= 0, got {buffer_percent}")
    if not 0 < capacity_percent <= FULL_CAPACITY:
        raise InvalidInputError(
            f"capacity_percent must be in (0, 100], got {capacity_percent}"
        )


def scheduled_working_days(
    duration_days: float,
    buffer_percent: float = 0.0,
    capacity_percent: float = FULL_CAPACITY,
) -> Fraction:
    """Working-day units a project consumes: buffered duration stretched by
    capacity, rounded up to the next half day."""
    validate_schedule_inputs(duration_days, buffer_percent, capacity_percent)
    total = _exact(duration_days) * (1 + _exact(buffer_percent) / 100)
    adjusted = total / (_exact(capacity_percent) / 100)
    return Fraction(math.ceil(adjusted * 2), 2)


def compute_end_date(
    start_date: date,
    duration_days: float,
    buffer_percent: float = 0.0,
    capacity_percent: float = FULL_CAPACITY,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> date:
    """Return the last calendar day of a project starting on *start_date*.

    Walks forward one calendar day at a time, counting working days, and
    stops on the day the count reaches the rounded duration. A trailing half
    day still occupies a whole working day. A start on a non-working day is
    not counted.
    """
    days = validate_working_days(working_days)
    rounded = scheduled_working_days(duration_days, buffer_percent, capacity_percent)
    if rounded <= 0:
        return start_date

    current = start_date
    added = 0
    while True:
        if weekday_index(current) in days:
            added += 1
        if added >= rounded:
            return current
        current += timedelta(days=1)


def project_end_date(
    project: Project,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> date:
    return compute_end_date(
        project.start_date,
        project.duration_days,
        project.buffer_percent,
        project.capacity_percent,
        working_days,
    )


def workday_duration(
    start: date,
    end: date,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> int:
    """Number of working days a scheduled range spans."""
    return count_working_days(start, end, working_days)


# ---------------------------------------------------------------------------
# Overlap
# ---------------------------------------------------------------------------


def _ranges_overlap(s1: date, e1: date, s2: date, e2: date) -> bool:
    return s1 <= e2 and s2 <= e1


def projects_overlap(
    p1: Project,
    p2: Project,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> bool:
    """True if the two projects share at least one calendar day."""
    days = validate_working_days(working_days)
    return _ranges_overlap(
        p1.start_date,
        project_end_date(p1, days),
        p2.start_date,
        project_end_date(p2, days),
    )


def _end_dates(projects: Sequence[Project], days: frozenset[int]) -> dict[str, date]:
    ends: dict[str, date] = {}
    for p in projects:
        if p.id in ends:
            raise InvalidInputError(f"Duplicate project id {p.id}")
        ends[p.id] = project_end_date(p, days)
    return ends


# ---------------------------------------------------------------------------
# Lane assignment
# ---------------------------------------------------------------------------


def assign_lanes(
    projects: Iterable[Project],
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> dict[str, LaneAssignment]:
    """Pack projects into lanes so overlapping projects sharing a lane never
    exceed 100% combined capacity.

    Greedy first-fit over projects sorted by (start, end, id). Every lane is
    tried from lane 0 upward; entries that ended before the current project's
    start are dropped from a lane before its load is summed. The project lands
    at ``offset`` = capacity already used by overlapping entries of that lane.
    """
    days = validate_working_days(working_days)
    projects = list(projects)
    ends = _end_dates(projects, days)
    ordered = sorted(projects, key=lambda p: (p.start_date, ends[p.id], str(p.id)))

    lanes: list[list[Project]] = []
    placed: dict[str, tuple[int, float]] = {}

    for project in ordered:
        start, end = project.start_date, ends[project.id]
        for index, active in enumerate(lanes):
            active[:] = [q for q in active if ends[q.id] >= start]
            used = sum(
                q.capacity_percent
                for q in active
                if _ranges_overlap(q.start_date, ends[q.id], start, end)
            )
            if used + project.capacity_percent <= FULL_CAPACITY + _EPS:
                active.append(project)
                placed[project.id] = (index, used)
                logger.debug(f"Placed {project.id} in lane {index} at offset {used}")
                break
        else:
            lanes.append([project])
            placed[project.id] = (len(lanes) - 1, 0)
            logger.debug(f"Opened lane {len(lanes) - 1} for {project.id}")

    total = len(lanes)
    return {
        pid: LaneAssignment(lane=lane, max_lanes=total, offset=offset)
        for pid, (lane, offset) in placed.items()
    }


# ---------------------------------------------------------------------------
# Conflict analysis
# ---------------------------------------------------------------------------


def overlap_graph(
    projects: Iterable[Project],
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> nx.Graph:
    """Graph with one node per project and an edge between every overlapping pair."""
    days = validate_working_days(working_days)
    projects = list(projects)
    ends = _end_dates(projects, days)

    G = nx.Graph()
    for p in projects:
        G.add_node(p.id, project=p, end_date=ends[p.id])
    for a, b in combinations(projects, 2):
        if _ranges_overlap(a.start_date, ends[a.id], b.start_date, ends[b.id]):
            G.add_edge(a.id, b.id, combined_capacity=a.capacity_percent + b.capacity_percent)
    return G


def overlap_clusters(
    projects: Iterable[Project],
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> list[list[Project]]:
    """Groups of projects linked by overlap, earliest group first."""
    G = overlap_graph(projects, working_days)
    clusters: list[list[Project]] = []
    for component in nx.connected_components(G):
        members = [G.nodes[pid]["project"] for pid in component]
        members.sort(key=lambda p: (p.start_date, G.nodes[p.id]["end_date"], str(p.id)))
        clusters.append(members)
    clusters.sort(key=lambda c: (c[0].start_date, str(c[0].id)))
    return clusters


def over_allocated(
    projects: Iterable[Project],
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> list[tuple[date, float]]:
    """Working days on which the summed capacity of *projects* exceeds 100%."""
    days = validate_working_days(working_days)
    projects = list(projects)
    ends = _end_dates(projects, days)

    load: dict[date, float] = defaultdict(float)
    for p in projects:
        for day in iter_working_days(p.start_date, ends[p.id], days):
            load[day] += p.capacity_percent

    return [(day, total) for day, total in sorted(load.items()) if total > FULL_CAPACITY + _EPS]
