"""Shared fixtures: a throwaway database seeded with users and a project."""

import tempfile
from pathlib import Path

import pytest

from taskboard.core import projects as projects_mod
from taskboard.core import users as users_mod
from taskboard.db.engine import init_db


@pytest.fixture
def db():
    """Create a temporary SQLite database for testing."""
    with tempfile.TemporaryDirectory() as tmp:
        conn = init_db(Path(tmp) / "test.db")
        yield conn
        conn.close()


@pytest.fixture
def seeded(db):
    """Users alice (owner), bob and carol; project "board" owned by alice."""
    users_mod.create_user(db, "alice", "Alice", "alice@example.com")
    users_mod.create_user(db, "bob", "Bob", "bob@example.com")
    users_mod.create_user(db, "carol", "Carol", "carol@example.com")
    projects_mod.create_project(
        db, "alice", "Board",
        task_statuses=["To Do", "In Progress", "Done"],
        project_id="board",
    )
    projects_mod.add_member(db, "board", "bob")
    projects_mod.add_member(db, "board", "carol")
    return db
