"""Typer CLI for laneplan."""

from __future__ import annotations

import sys
from datetime import date
from pathlib import Path
from typing import Annotated, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from laneplan.calendar import (
    WEEKDAY_NAMES,
    count_working_days,
    enumerate_working_days,
    format_date,
    parse_date,
    to_input_date,
    weekday_index,
)
from laneplan.errors import LanePlanError
from laneplan.models import PlannerConfig, Project
from laneplan.persistence import Store
from laneplan.planner import Planner
from laneplan.scheduler import (
    compute_end_date,
    over_allocated,
    overlap_clusters,
    scheduled_working_days,
)

app = typer.Typer(
    name="laneplan",
    help="Capacity-aware resource planner for the command line.",
    no_args_is_help=True,
)
user_app = typer.Typer(help="Manage the people projects are assigned to.", no_args_is_help=True)
app.add_typer(user_app, name="user")
console = Console()


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
) -> None:
    logger.remove()
    # Resolve sys.stderr per message; it may be swapped after startup.
    logger.add(lambda msg: sys.stderr.write(msg), level="DEBUG" if verbose else "WARNING")


def _get_store() -> Store:
    return Store()


def _complete_project_id(incomplete: str) -> list[str]:
    """Shell completion for project IDs. Matches against both ID and name."""
    try:
        planner = Store().load()
    except (OSError, KeyError, ValueError):
        return []
    if planner is None:
        return []

    q = incomplete.lower()
    return [
        f"{p.name} ({p.id})"
        for p in planner.projects
        if q in p.id.lower() or q in p.name.lower()
    ]


def _parse_project_id(arg: str) -> str:
    """Extracts the ID if the user used the autocompleted 'Name (ID)' format."""
    if "(" in arg and arg.endswith(")"):
        return arg.split("(")[-1].strip(")")
    return arg.strip()


def _load(store: Store) -> Planner | None:
    try:
        return store.load()
    except (KeyError, ValueError) as e:
        console.print(f"[red]Error: cannot read {store.db_path}: {e}[/red]")
        raise typer.Exit(1)


def _require_planner(planner: Planner | None) -> Planner:
    if planner is None:
        console.print("[red]No planner found. Run 'laneplan init' first.[/red]")
        raise typer.Exit(1)
    return planner


def _parse_day(text: str) -> date:
    try:
        return parse_date(text)
    except ValueError:
        console.print(f"[red]Invalid date '{text}'. Use YYYY-MM-DD or DD.MM.YYYY.[/red]")
        raise typer.Exit(1)


def _parse_working_days(text: str) -> list[int]:
    """Accept weekday indices (0=Sun) or names: '1,2,3,4,5' or 'mon,tue,wed'."""
    names = [n.lower() for n in WEEKDAY_NAMES]
    days: list[int] = []
    for part in (p.strip().lower() for p in text.split(",")):
        if not part:
            continue
        if part.isdigit():
            days.append(int(part))
        elif part[:3] in names:
            days.append(names.index(part[:3]))
        else:
            console.print(f"[red]Unknown weekday '{part}'.[/red]")
            raise typer.Exit(1)
    return days


def _describe_working_days(days: frozenset[int]) -> str:
    return ", ".join(WEEKDAY_NAMES[d] for d in sorted(days))


def _user_name(planner: Planner, user_id: str | None) -> str:
    if user_id is None:
        return "unassigned"
    try:
        return planner.get_user(user_id).name
    except KeyError:
        return user_id


def _fmt_pct(value: float) -> str:
    return f"{value:g}%"


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


@app.command()
def init(
    working_days: Annotated[str, typer.Option(help="Working weekdays, e.g. 1,2,3,4,5 or mon,tue,wed")] = "1,2,3,4,5",
    timeline_start: Annotated[str, typer.Option(help="First day of the visible timeline")] = "2026-01-01",
    timeline_end: Annotated[str, typer.Option(help="Last day of the visible timeline")] = "2026-12-31",
) -> None:
    """Initialize (or reinitialize) planner configuration."""
    store = _get_store()
    planner = _load(store) or Planner()
    try:
        planner.config = PlannerConfig(
            working_days=frozenset(_parse_working_days(working_days)),
            timeline_start=_parse_day(timeline_start),
            timeline_end=_parse_day(timeline_end),
            dark_mode=planner.config.dark_mode,
        )
    except LanePlanError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    planner.recompute_end_dates()
    store.save(planner)
    console.print(
        f"[green]Planner initialized. Working days: {_describe_working_days(planner.working_days)}[/green]"
    )


@app.command()
def config(
    working_days: Annotated[Optional[str], typer.Option(help="New working weekdays")] = None,
    timeline_start: Annotated[Optional[str], typer.Option(help="New timeline start")] = None,
    timeline_end: Annotated[Optional[str], typer.Option(help="New timeline end")] = None,
    dark_mode: Annotated[Optional[bool], typer.Option("--dark/--light", help="UI theme")] = None,
) -> None:
    """Show or change planner settings. Changing working days recomputes every end date."""
    store = _get_store()
    planner = _require_planner(_load(store))

    changed = False
    try:
        if working_days is not None:
            planner.set_working_days(_parse_working_days(working_days))
            changed = True
        if timeline_start is not None or timeline_end is not None:
            planner.set_timeline(
                _parse_day(timeline_start) if timeline_start else planner.config.timeline_start,
                _parse_day(timeline_end) if timeline_end else planner.config.timeline_end,
            )
            changed = True
    except LanePlanError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if dark_mode is not None:
        planner.config.dark_mode = dark_mode
        changed = True

    if changed:
        store.save(planner)
        console.print("[green]Configuration updated.[/green]")

    cfg = planner.config
    console.print(f"  Working days: {_describe_working_days(cfg.working_days)}")
    console.print(f"  Timeline:     {format_date(cfg.timeline_start)} - {format_date(cfg.timeline_end)}")
    console.print(f"  Workdays:     {len(planner.weekdays)}")
    console.print(f"  Theme:        {'dark' if cfg.dark_mode else 'light'}")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@user_app.command("add")
def user_add(
    name: str,
    color: Annotated[Optional[str], typer.Option(help="Hex color, e.g. #7BA3D1")] = None,
) -> None:
    """Add a user."""
    store = _get_store()
    planner = _require_planner(_load(store))
    user = planner.add_user(name, color)
    store.save(planner)
    console.print(f"[green]Added user '{name}' as {user.id}[/green]")


@user_app.command("list")
def user_list() -> None:
    """List users with their project counts."""
    planner = _require_planner(_load(_get_store()))
    if not planner.users:
        console.print("No users found.")
        return

    table = Table(title="Users")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Color")
    table.add_column("Projects")
    for u in planner.users:
        table.add_row(u.id, u.name, f"[{u.color}]{u.color}[/]", str(len(planner.get_projects_for_user(u.id))))
    console.print(table)


@user_app.command("remove")
def user_remove(user_id: str) -> None:
    """Remove a user. Their projects become unassigned."""
    store = _get_store()
    planner = _require_planner(_load(store))
    orphaned = len(planner.get_projects_for_user(user_id))
    if not planner.remove_user(user_id):
        console.print(f"[red]User {user_id} not found.[/red]")
        raise typer.Exit(1)
    store.save(planner)
    console.print(f"[green]Removed {user_id}.[/green]")
    if orphaned:
        console.print(f"  [yellow]{orphaned} project(s) moved to unassigned.[/yellow]")


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


def _parse_properties(pairs: list[str] | None) -> dict[str, str]:
    props: dict[str, str] = {}
    for pair in pairs or []:
        if "=" not in pair:
            console.print(f"[red]Custom property '{pair}' must be KEY=VALUE.[/red]")
            raise typer.Exit(1)
        key, value = pair.split("=", 1)
        props[key.strip()] = value.strip()
    return props


@app.command()
def add(
    name: str,
    start: Annotated[str, typer.Option("--start", "-s", help="Start date (YYYY-MM-DD)")],
    duration: Annotated[float, typer.Option("--duration", "-d", help="Duration in days (0.5 steps)")],
    buffer: Annotated[float, typer.Option("--buffer", "-b", help="Buffer percent")] = 0.0,
    capacity: Annotated[float, typer.Option("--capacity", "-c", help="Daily capacity percent (0-100]")] = 100.0,
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="Assignee user ID")] = None,
    color: Annotated[Optional[str], typer.Option(help="Hex color")] = None,
    z_index: Annotated[int, typer.Option("--z-index", help="Stacking order")] = 1,
    prop: Annotated[Optional[list[str]], typer.Option("--prop", help="Custom property KEY=VALUE")] = None,
) -> None:
    """Add a new project. Its end date is computed from the working-day calendar."""
    store = _get_store()
    planner = _require_planner(_load(store))

    if user is not None and user not in {u.id for u in planner.users}:
        console.print(f"[red]User {user} not found.[/red]")
        raise typer.Exit(1)

    try:
        project = planner.add_project(
            name,
            _parse_day(start),
            duration,
            buffer_percent=buffer,
            capacity_percent=capacity,
            user_id=user,
            color=color,
            z_index=z_index,
            custom_properties=_parse_properties(prop),
        )
    except LanePlanError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    store.save(planner)
    console.print(
        f"[green]Added '{name}' as {project.id} "
        f"({format_date(project.start_date)} - {format_date(project.end_date)})[/green]"
    )


@app.command("list")
def list_projects(
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="Filter by user ID ('none' for unassigned)")] = None,
    search: Annotated[Optional[str], typer.Option("--search", "-q", help="Filter by name (case-insensitive)")] = None,
    csv: Annotated[Optional[str], typer.Option("--csv", help="Export list to CSV file")] = None,
) -> None:
    """List projects with their computed dates."""
    planner = _require_planner(_load(_get_store()))
    if not planner.projects:
        console.print("No projects found.")
        return

    filtered = list(planner.projects)
    if user is not None:
        uid = None if user.lower() == "none" else user
        filtered = [p for p in filtered if p.user_id == uid]
    if search:
        q = search.lower()
        filtered = [p for p in filtered if q in p.name.lower() or q in p.id.lower()]

    if not filtered:
        console.print("No projects match the filter.")
        return

    filtered.sort(key=lambda p: (p.start_date, p.end_date, p.id))

    if csv:
        import csv as csv_mod

        with Path(csv).open("w", newline="") as f:
            writer = csv_mod.writer(f)
            writer.writerow(["ID", "Name", "User", "Start", "End", "Days", "Buffer", "Capacity", "Workdays", "Split Of"])
            for p in filtered:
                writer.writerow([
                    p.id,
                    p.name,
                    _user_name(planner, p.user_id),
                    to_input_date(p.start_date),
                    to_input_date(p.end_date),
                    f"{p.duration_days:g}",
                    f"{p.buffer_percent:g}",
                    f"{p.capacity_percent:g}",
                    count_working_days(p.start_date, p.end_date, planner.working_days),
                    p.parent_project_id or "",
                ])
        console.print(f"[green]Exported {len(filtered)} projects to {csv}[/green]")
        return

    table = Table(title="Projects")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("User")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Days")
    table.add_column("Buffer")
    table.add_column("Capacity")
    table.add_column("Workdays")
    table.add_column("Split Of")

    for p in filtered:
        table.add_row(
            p.id,
            f"[{p.color}]■[/] {p.name}",
            _user_name(planner, p.user_id),
            format_date(p.start_date),
            format_date(p.end_date),
            f"{p.duration_days:g}",
            _fmt_pct(p.buffer_percent),
            _fmt_pct(p.capacity_percent),
            str(count_working_days(p.start_date, p.end_date, planner.working_days)),
            p.parent_project_id or "-",
        )

    console.print(table)
    if user is not None or search:
        console.print(f"[dim]Showing {len(filtered)} of {len(planner.projects)} projects[/dim]")


@app.command()
def show(project_id: Annotated[str, typer.Argument(autocompletion=_complete_project_id)]) -> None:
    """Show all details for a single project."""
    project_id = _parse_project_id(project_id)
    planner = _require_planner(_load(_get_store()))
    try:
        p = planner.get_project(project_id)
    except KeyError:
        console.print(f"[red]Project {project_id} not found.[/red]")
        raise typer.Exit(1)

    units = scheduled_working_days(p.duration_days, p.buffer_percent, p.capacity_percent)
    console.print(f"\n[bold]{p.id}[/bold]  {p.name}")
    console.print(f"  User:       {_user_name(planner, p.user_id)}")
    console.print(f"  Start:      {format_date(p.start_date)}")
    console.print(f"  End:        {format_date(p.end_date)}")
    console.print(f"  Duration:   {p.duration_days:g} day(s)")
    console.print(f"  Buffer:     {_fmt_pct(p.buffer_percent)}")
    console.print(f"  Capacity:   {_fmt_pct(p.capacity_percent)}")
    console.print(f"  Scheduled:  {float(units):g} working day(s)")
    console.print(f"  Color:      [{p.color}]{p.color}[/]")
    console.print(f"  Z-index:    {p.z_index}")
    for key, value in p.custom_properties.items():
        console.print(f"  {key}: {value}")

    if p.is_split:
        segments = planner.get_split_projects(p.id)
        console.print(f"\n  [dim]-- Split ({len(segments)} segments, originally {p.original_duration_days:g} days) --[/dim]")
        for s in segments:
            marker = "*" if s.id == p.id else " "
            console.print(
                f"  {marker} {s.id}  {format_date(s.start_date)} - {format_date(s.end_date)}"
                f"  {s.duration_days:g}d  {_user_name(planner, s.user_id)}"
            )

    lanes = planner.lanes_for_user(p.user_id)
    a = lanes[p.id]
    console.print(f"\n  Lane {a.lane + 1} of {a.max_lanes}, offset {_fmt_pct(a.offset)}")
    console.print()


@app.command()
def update(
    project_id: Annotated[str, typer.Argument(autocompletion=_complete_project_id)],
    name: Annotated[Optional[str], typer.Option(help="New project name")] = None,
    start: Annotated[Optional[str], typer.Option("--start", "-s", help="New start date")] = None,
    duration: Annotated[Optional[float], typer.Option("--duration", "-d", help="New duration in days")] = None,
    buffer: Annotated[Optional[float], typer.Option("--buffer", "-b", help="New buffer percent")] = None,
    capacity: Annotated[Optional[float], typer.Option("--capacity", "-c", help="New capacity percent")] = None,
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="New assignee ('none' to unassign)")] = None,
    color: Annotated[Optional[str], typer.Option(help="New hex color")] = None,
    z_index: Annotated[Optional[int], typer.Option("--z-index", help="New stacking order")] = None,
    prop: Annotated[Optional[list[str]], typer.Option("--prop", help="Set custom property KEY=VALUE")] = None,
    remove_prop: Annotated[Optional[list[str]], typer.Option("--remove-prop", help="Remove a custom property")] = None,
) -> None:
    """Update fields of an existing project.

    Name, color and custom properties are shared by all segments of a split
    project; dates, duration and assignee are per segment.
    """
    project_id = _parse_project_id(project_id)
    store = _get_store()
    planner = _require_planner(_load(store))
    try:
        current = planner.get_project(project_id)
    except KeyError:
        console.print(f"[red]Project {project_id} not found.[/red]")
        raise typer.Exit(1)

    changes: dict = {}
    if name is not None:
        changes["name"] = name
    if start is not None:
        changes["start_date"] = _parse_day(start)
    if duration is not None:
        changes["duration_days"] = duration
    if buffer is not None:
        changes["buffer_percent"] = buffer
    if capacity is not None:
        changes["capacity_percent"] = capacity
    if user is not None:
        uid = None if user.lower() == "none" else user
        if uid is not None and uid not in {u.id for u in planner.users}:
            console.print(f"[red]User {uid} not found.[/red]")
            raise typer.Exit(1)
        changes["user_id"] = uid
    if color is not None:
        changes["color"] = color
    if z_index is not None:
        changes["z_index"] = z_index
    if prop or remove_prop:
        props = dict(current.custom_properties)
        props.update(_parse_properties(prop))
        for key in remove_prop or []:
            props.pop(key, None)
        changes["custom_properties"] = props

    if not changes:
        console.print("Nothing to update.")
        return

    try:
        project = planner.update_project(project_id, **changes)
    except LanePlanError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    store.save(planner)
    console.print(f"[green]Updated {project_id}. Ends {format_date(project.end_date)}.[/green]")


@app.command()
def delete(project_id: Annotated[str, typer.Argument(autocompletion=_complete_project_id)]) -> None:
    """Delete a project (or one segment of a split project)."""
    project_id = _parse_project_id(project_id)
    store = _get_store()
    planner = _require_planner(_load(store))
    if not planner.delete_project(project_id):
        console.print(f"[red]Project {project_id} not found.[/red]")
        raise typer.Exit(1)
    store.save(planner)
    console.print(f"[green]Deleted {project_id}.[/green]")


@app.command()
def split(project_id: Annotated[str, typer.Argument(autocompletion=_complete_project_id)]) -> None:
    """Split off the last day of a project into a new segment."""
    project_id = _parse_project_id(project_id)
    store = _get_store()
    planner = _require_planner(_load(store))
    try:
        planner.get_project(project_id)
    except KeyError:
        console.print(f"[red]Project {project_id} not found.[/red]")
        raise typer.Exit(1)

    segment = planner.split_project(project_id)
    if segment is None:
        console.print(f"[yellow]{project_id} is too short to split (needs more than 1 day).[/yellow]")
        raise typer.Exit(1)
    store.save(planner)
    console.print(
        f"[green]Split {project_id}: new segment {segment.id} on {format_date(segment.start_date)}[/green]"
    )


# ---------------------------------------------------------------------------
# Scheduling views
# ---------------------------------------------------------------------------


def _user_groups(planner: Planner, user: str | None) -> list[tuple[str | None, str]]:
    if user is not None:
        uid = None if user.lower() == "none" else user
        return [(uid, _user_name(planner, uid))]
    groups: list[tuple[str | None, str]] = [(u.id, u.name) for u in planner.users]
    if planner.get_projects_for_user(None):
        groups.append((None, "unassigned"))
    return groups


@app.command()
def lanes(
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="Only this user ID ('none' for unassigned)")] = None,
) -> None:
    """Show lane assignments: projects sharing a lane never exceed 100% capacity."""
    planner = _require_planner(_load(_get_store()))

    for uid, label in _user_groups(planner, user):
        projects = {p.id: p for p in planner.get_projects_for_user(uid)}
        if not projects:
            continue
        assignments = planner.lanes_for_user(uid)
        max_lanes = next(iter(assignments.values())).max_lanes

        table = Table(title=f"{label} ({max_lanes} lane{'s' if max_lanes != 1 else ''})")
        table.add_column("Lane")
        table.add_column("Offset")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Start")
        table.add_column("End")
        table.add_column("Capacity")

        ordered = sorted(
            assignments.items(),
            key=lambda kv: (kv[1].lane, projects[kv[0]].start_date, kv[1].offset),
        )
        for pid, a in ordered:
            p = projects[pid]
            table.add_row(
                str(a.lane + 1),
                _fmt_pct(a.offset),
                p.id,
                p.name,
                format_date(p.start_date),
                format_date(p.end_date),
                _fmt_pct(p.capacity_percent),
            )
        console.print(table)


@app.command()
def conflicts(
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="Only this user ID ('none' for unassigned)")] = None,
) -> None:
    """Report days where a user's combined project capacity exceeds 100%."""
    planner = _require_planner(_load(_get_store()))
    found = False

    for uid, label in _user_groups(planner, user):
        projects = planner.get_projects_for_user(uid)
        days = over_allocated(projects, planner.working_days)
        if not days:
            continue
        found = True
        console.print(f"\n[bold red]{label}[/bold red]: over-allocated on {len(days)} working day(s)")
        for day, load in days:
            console.print(f"  {format_date(day)}  {_fmt_pct(load)}")
        for cluster in overlap_clusters(projects, planner.working_days):
            if len(cluster) > 1:
                console.print(f"  [dim]Overlapping: {', '.join(p.id for p in cluster)}[/dim]")

    if not found:
        console.print("[green]No over-allocation found.[/green]")


@app.command("end-date")
def end_date(
    start: Annotated[str, typer.Argument(help="Start date (YYYY-MM-DD)")],
    duration: Annotated[float, typer.Argument(help="Duration in days")],
    buffer: Annotated[float, typer.Option("--buffer", "-b", help="Buffer percent")] = 0.0,
    capacity: Annotated[float, typer.Option("--capacity", "-c", help="Capacity percent")] = 100.0,
    working_days: Annotated[Optional[str], typer.Option(help="Working weekdays (defaults to the planner's)")] = None,
) -> None:
    """Calculate a project's end date without touching the planner."""
    if working_days is not None:
        days = _parse_working_days(working_days)
    else:
        planner = _load(_get_store())
        days = sorted(planner.working_days if planner else PlannerConfig().working_days)

    start_day = _parse_day(start)
    try:
        end = compute_end_date(start_day, duration, buffer, capacity, days)
    except LanePlanError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"{format_date(start_day)} -> [bold]{format_date(end)}[/bold]")
    console.print(f"  {count_working_days(start_day, end, days)} working day(s)")


@app.command("calendar")
def calendar_cmd(
    start: Annotated[str, typer.Argument(help="First day")],
    end: Annotated[str, typer.Argument(help="Last day")],
) -> None:
    """List the working days in a date range."""
    planner = _load(_get_store())
    days = planner.working_days if planner else PlannerConfig().working_days
    workdays = enumerate_working_days(_parse_day(start), _parse_day(end), days)
    if not workdays:
        console.print("No working days in range.")
        return
    for d in workdays:
        console.print(f"{WEEKDAY_NAMES[weekday_index(d)]} {format_date(d)}")
    console.print(f"[dim]{len(workdays)} working day(s)[/dim]")


@app.command()
def viz(
    output: Annotated[str, typer.Option("-o", "--output", help="Output file path")] = "planner.md",
) -> None:
    """Generate a Mermaid gantt chart, one section per user."""
    planner = _require_planner(_load(_get_store()))
    if not planner.projects:
        console.print("No projects to visualize.")
        return

    # End dates are the last working day of a project, not the day after.
    lines = ["```mermaid", "gantt", "    dateFormat YYYY-MM-DD", "    inclusiveEndDates", "    axisFormat %d.%m"]
    for uid, label in _user_groups(planner, None):
        projects: list[Project] = sorted(
            planner.get_projects_for_user(uid), key=lambda p: (p.start_date, p.id)
        )
        if not projects:
            continue
        lines.append(f"    section {label}")
        for p in projects:
            title = p.name.replace(":", " ")
            if p.capacity_percent < 100:
                title += f" ({p.capacity_percent:g}%)"
            lines.append(
                f"    {title} :{p.id.replace('-', '')}, {to_input_date(p.start_date)}, {to_input_date(p.end_date)}"
            )
    lines.append("```")

    Path(output).write_text("\n".join(lines) + "\n")
    console.print(f"[green]Wrote Mermaid gantt chart to {output}[/green]")


if __name__ == "__main__":
    app()
