"""MCP server for laneplan: exposes planner tools to AI assistants."""

from __future__ import annotations

import json

from mcp.server.fastmcp import FastMCP

from laneplan.calendar import DEFAULT_WORKING_DAYS, count_working_days, parse_date, to_input_date
from laneplan.errors import LanePlanError
from laneplan.models import Project
from laneplan.persistence import Store
from laneplan.planner import Planner
from laneplan.scheduler import compute_end_date as scheduler_compute_end_date
from laneplan.scheduler import over_allocated

mcp = FastMCP(
    "laneplan",
    instructions="""\
laneplan is a capacity-aware resource planner. Projects are assigned to users \
and laid out on a calendar of working days.

Key concepts:
- **Working days**: a set of weekday indices (0=Sunday .. 6=Saturday), Mon-Fri \
by default. Non-working days are skipped when computing end dates.
- **Duration**: in working days, in 0.5 steps.
- **Buffer percent**: padding applied to the duration (25 means +25%).
- **Capacity percent**: share of a working day the project uses. 50% capacity \
doubles the elapsed working days.
- **End date**: always computed, never set directly.
- **Lanes**: overlapping projects of one user are packed into lanes; projects \
sharing a lane never exceed 100% combined capacity.
- **Split**: a project can be split into segments that share name, color and \
custom properties but have their own dates and assignee.

Use get_lanes to see how a user's work is stacked and get_conflicts to find \
days where someone is booked beyond 100%.\
""",
)


def _get_store() -> Store:
    return Store()


def _load(store: Store) -> Planner | None:
    try:
        return store.load()
    except KeyError as e:
        raise ValueError(f"cannot read {store.db_path}: missing field {e}") from e
    except ValueError as e:
        raise ValueError(f"cannot read {store.db_path}: {e}") from e


def _require_planner(store: Store) -> Planner:
    planner = _load(store)
    if planner is None:
        raise ValueError("Planner not initialized. Run 'laneplan init' first.")
    return planner


def _project_to_dict(p: Project, planner: Planner) -> dict:
    d = p.to_dict()
    d["workdays"] = count_working_days(p.start_date, p.end_date, planner.working_days)
    return d


# ---------------------------------------------------------------------------
# Write tools
# ---------------------------------------------------------------------------


@mcp.tool()
def add_user(name: str, color: str | None = None) -> str:
    """Add a user projects can be assigned to.

    Args:
        name: Display name
        color: Optional hex color (e.g. "#7BA3D1")
    """
    store = _get_store()
    try:
        planner = _require_planner(store)
    except ValueError as e:
        return f"Error: {e}"
    user = planner.add_user(name, color)
    store.save(planner)
    return f"Added user '{name}' as {user.id}"


@mcp.tool()
def add_project(
    name: str,
    start_date: str,
    duration_days: float,
    buffer_percent: float = 0.0,
    capacity_percent: float = 100.0,
    user_id: str | None = None,
    color: str | None = None,
    custom_properties: dict[str, str] | None = None,
) -> str:
    """Add a new project. The end date is computed automatically.

    Args:
        name: Project name
        start_date: First day (YYYY-MM-DD)
        duration_days: Duration in working days (0.5 steps)
        buffer_percent: Schedule padding in percent
        capacity_percent: Share of each working day the project uses (0-100]
        user_id: Assignee (e.g. "U-1"); omit for unassigned
        color: Hex color
        custom_properties: Free-form key/value pairs
    """
    store = _get_store()
    try:
        planner = _require_planner(store)
        if user_id is not None:
            planner.get_user(user_id)
        project = planner.add_project(
            name,
            parse_date(start_date),
            duration_days,
            buffer_percent=buffer_percent,
            capacity_percent=capacity_percent,
            user_id=user_id,
            color=color,
            custom_properties=custom_properties,
        )
    except KeyError:
        return f"Error: user {user_id} not found."
    except ValueError as e:
        return f"Error: {e}"
    store.save(planner)
    return f"Added '{name}' as {project.id}, ending {to_input_date(project.end_date)}"


@mcp.tool()
def update_project(
    project_id: str,
    name: str | None = None,
    start_date: str | None = None,
    duration_days: float | None = None,
    buffer_percent: float | None = None,
    capacity_percent: float | None = None,
    user_id: str | None = None,
    unassign: bool = False,
    color: str | None = None,
    custom_properties: dict[str, str] | None = None,
) -> str:
    """Update fields of a project. Only provided fields are changed.

    Name, color and custom properties propagate to every segment of a split project.

    Args:
        project_id: Project ID (e.g. "P-3")
        name: New name
        start_date: New start (YYYY-MM-DD)
        duration_days: New duration in working days
        buffer_percent: New buffer percent
        capacity_percent: New capacity percent
        user_id: New assignee
        unassign: True to move the project to unassigned
        color: New hex color
        custom_properties: Replacement custom properties
    """
    store = _get_store()
    try:
        planner = _require_planner(store)
    except ValueError as e:
        return f"Error: {e}"

    changes: dict = {}
    if name is not None:
        changes["name"] = name
    if start_date is not None:
        try:
            changes["start_date"] = parse_date(start_date)
        except ValueError:
            return "Error: start_date must be in YYYY-MM-DD format."
    if duration_days is not None:
        changes["duration_days"] = duration_days
    if buffer_percent is not None:
        changes["buffer_percent"] = buffer_percent
    if capacity_percent is not None:
        changes["capacity_percent"] = capacity_percent
    if unassign:
        changes["user_id"] = None
    elif user_id is not None:
        try:
            planner.get_user(user_id)
        except KeyError:
            return f"Error: user {user_id} not found."
        changes["user_id"] = user_id
    if color is not None:
        changes["color"] = color
    if custom_properties is not None:
        changes["custom_properties"] = custom_properties

    try:
        project = planner.update_project(project_id, **changes)
    except LanePlanError as e:
        return f"Error: {e}"
    if project is None:
        return f"Error: project {project_id} not found."
    store.save(planner)
    return f"Updated {project_id}, ending {to_input_date(project.end_date)}"


@mcp.tool()
def delete_project(project_id: str) -> str:
    """Delete a project or one segment of a split project.

    Args:
        project_id: Project ID (e.g. "P-3")
    """
    store = _get_store()
    try:
        planner = _require_planner(store)
    except ValueError as e:
        return f"Error: {e}"
    if not planner.delete_project(project_id):
        return f"Error: project {project_id} not found."
    store.save(planner)
    return f"Deleted {project_id}"


@mcp.tool()
def split_project(project_id: str) -> str:
    """Split the last day of a project into a new one-day segment.

    Args:
        project_id: Project ID (e.g. "P-3")
    """
    store = _get_store()
    try:
        planner = _require_planner(store)
    except ValueError as e:
        return f"Error: {e}"
    segment = planner.split_project(project_id)
    if segment is None:
        return f"Error: project {project_id} not found or too short to split."
    store.save(planner)
    return f"Created segment {segment.id} starting {to_input_date(segment.start_date)}"


# ---------------------------------------------------------------------------
# Read tools
# ---------------------------------------------------------------------------


@mcp.tool()
def list_users() -> str:
    """List all users."""
    try:
        planner = _require_planner(_get_store())
    except ValueError as e:
        return f"Error: {e}"
    return json.dumps([u.to_dict() for u in planner.users], indent=2)


@mcp.tool()
def list_projects(user_id: str | None = None, unassigned_only: bool = False) -> str:
    """List projects with computed end dates.

    Args:
        user_id: Only projects of this user
        unassigned_only: Only projects without an assignee
    """
    try:
        planner = _require_planner(_get_store())
    except ValueError as e:
        return f"Error: {e}"
    projects = planner.projects
    if unassigned_only:
        projects = planner.get_projects_for_user(None)
    elif user_id is not None:
        projects = planner.get_projects_for_user(user_id)
    return json.dumps([_project_to_dict(p, planner) for p in projects], indent=2)


@mcp.tool()
def get_lanes(user_id: str | None = None) -> str:
    """Lane layout of one user's projects (omit user_id for unassigned ones).

    Args:
        user_id: User ID (e.g. "U-1")
    """
    try:
        planner = _require_planner(_get_store())
        lanes = planner.lanes_for_user(user_id)
    except ValueError as e:
        return f"Error: {e}"
    return json.dumps(
        {pid: {"lane": a.lane, "max_lanes": a.max_lanes, "offset": a.offset} for pid, a in lanes.items()},
        indent=2,
    )


@mcp.tool()
def get_conflicts(user_id: str | None = None) -> str:
    """Working days on which a user is booked beyond 100% capacity.

    Args:
        user_id: User ID (e.g. "U-1"); omit for unassigned projects
    """
    try:
        planner = _require_planner(_get_store())
        days = over_allocated(planner.get_projects_for_user(user_id), planner.working_days)
    except ValueError as e:
        return f"Error: {e}"
    if not days:
        return "No over-allocation."
    return json.dumps([{"date": to_input_date(d), "capacity_percent": load} for d, load in days], indent=2)


@mcp.tool()
def compute_end_date(
    start_date: str,
    duration_days: float,
    buffer_percent: float = 0.0,
    capacity_percent: float = 100.0,
    working_days: list[int] | None = None,
) -> str:
    """Calculate an end date without changing the planner.

    Args:
        start_date: First day (YYYY-MM-DD)
        duration_days: Duration in working days
        buffer_percent: Schedule padding in percent
        capacity_percent: Share of each working day used (0-100]
        working_days: Weekday indices, 0=Sunday; defaults to the planner's set or Mon-Fri
    """
    try:
        if working_days is None:
            planner = _load(_get_store())
            working_days = sorted(planner.working_days if planner else DEFAULT_WORKING_DAYS)
        end = scheduler_compute_end_date(
            parse_date(start_date), duration_days, buffer_percent, capacity_percent, working_days
        )
    except ValueError as e:
        return f"Error: {e}"
    return to_input_date(end)


def main():
    """Entry point for the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
