"""JSON file persistence for the planner."""

from __future__ import annotations

import json
import os
from pathlib import Path

from loguru import logger

from laneplan.models import PlannerConfig, Project, User
from laneplan.planner import Planner

DEFAULT_DB_FILE = "planner.json"
DB_ENV_VAR = "LANEPLAN_DB"


def default_db_path() -> Path:
    return Path(os.environ.get(DB_ENV_VAR, DEFAULT_DB_FILE))


class Store:
    """Reads and writes the planner database (JSON file)."""

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path) if db_path is not None else default_db_path()

    def load(self) -> Planner | None:
        """Return the stored Planner, or None if the file doesn't exist yet.

        End dates are recomputed from the stored scheduling fields.
        """
        if not self.db_path.exists():
            return None

        raw = json.loads(self.db_path.read_text())
        config = PlannerConfig.from_dict(raw.get("config", {}))
        users = [User.from_dict(u) for u in raw.get("users", [])]
        projects = [Project.from_dict(p) for p in raw.get("projects", [])]
        logger.info(f"Loaded {len(users)} users and {len(projects)} projects from {self.db_path}")
        return Planner(config, users, projects, raw.get("id_counters", {}))

    def save(self, planner: Planner) -> None:
        """Persist config, users and projects to disk."""
        raw = {
            "config": planner.config.to_dict(),
            "users": [u.to_dict() for u in planner.users],
            "projects": [p.to_dict() for p in planner.projects],
            "id_counters": planner.id_counters,
        }
        self.db_path.write_text(json.dumps(raw, indent=4))
        logger.info(f"Saved planner to {self.db_path}")
