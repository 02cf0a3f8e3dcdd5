"""Fixtures for building throwaway workflow configuration sets on disk."""

import copy
from pathlib import Path

import pytest
import yaml

BASE_ROOT = {
    "key": "REQUEST_TEST",
    "name": "Test workflow",
    "target_type": "REQUEST",
    "status": "published",
    "description": "Throwaway graph for tests",
}

BASE_STATES = [
    {"code": "DRAFT", "name": "Draft", "sort_order": 5, "initial": True, "request_status": "DRAFT"},
    {"code": "SUBMITTED", "name": "Submitted", "sort_order": 10, "request_status": "SUBMITTED"},
    {"code": "DONE", "name": "Done", "sort_order": 20, "terminal": True, "request_status": "FULFILLED"},
]

BASE_TRANSITIONS = [
    {"from": "DRAFT", "to": "SUBMITTED", "action": "SUBMIT"},
    {"from": "SUBMITTED", "to": "DONE", "action": "FINISH", "permission": "requests.finish"},
]


@pytest.fixture
def base_fragments():
    """Deep copies of a small valid graph: (root, states, transitions)."""
    return (
        copy.deepcopy(BASE_ROOT),
        copy.deepcopy(BASE_STATES),
        copy.deepcopy(BASE_TRANSITIONS),
    )


@pytest.fixture
def config_dir(tmp_path) -> Path:
    sets = tmp_path / "sets"
    sets.mkdir()
    return sets


@pytest.fixture
def write_set(config_dir):
    """
    Factory fixture: write root/states/transitions fragments for a set.

    Fragments not overridden default to the small valid graph; names in
    ``skip`` are not written at all.
    """

    def _write(
        set_name: str = "test_set",
        root: dict | None = None,
        states: list | None = None,
        transitions: list | None = None,
        skip: tuple[str, ...] = (),
    ) -> Path:
        set_dir = config_dir / set_name
        set_dir.mkdir(parents=True, exist_ok=True)
        fragments = {
            "root.yaml": BASE_ROOT if root is None else root,
            "states.yaml": {"states": BASE_STATES if states is None else states},
            "transitions.yaml": {
                "transitions": BASE_TRANSITIONS if transitions is None else transitions,
            },
        }
        for filename, data in fragments.items():
            if filename in skip:
                continue
            (set_dir / filename).write_text(
                yaml.safe_dump(data, sort_keys=False), encoding="utf-8",
            )
        return set_dir

    return _write
