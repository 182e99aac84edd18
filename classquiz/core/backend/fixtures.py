"""Development catalog seeded into the memory backend."""

from __future__ import annotations

from classquiz.core.backend.base import DataStore

DEFAULT_COURSES: list[dict[str, str]] = [
    {"name": "Mathematics", "description": "Arithmetic, algebra and geometry"},
    {"name": "Physics", "description": "Mechanics, waves and electricity"},
    {"name": "Computer Science", "description": "Programming and data representation"},
]

DEFAULT_TAGS: list[dict[str, str]] = [
    {"name": "Fractions", "color": "#f59e0b"},
    {"name": "Equations", "color": "#10b981"},
    {"name": "Geometry", "color": "#3b82f6"},
    {"name": "Recursion", "color": "#8b5cf6"},
    {"name": "Kinematics", "color": "#ef4444"},
]


def seed_catalog(store: DataStore) -> None:
    """Insert the default courses and tags unless the catalog already has entries."""
    if not store.select("courses", limit=1):
        store.insert("courses", DEFAULT_COURSES)
    if not store.select("tags", limit=1):
        store.insert("tags", DEFAULT_TAGS)
