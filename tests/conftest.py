from __future__ import annotations

import json
from pathlib import Path

import pytest

from opsnavigator.catalog import WorkflowCatalog, load_catalog, load_catalog_from_dir
from opsnavigator.scheduler import TickScheduler


@pytest.fixture
def scheduler() -> TickScheduler:
    """Fresh virtual clock at 0 ms."""
    return TickScheduler()


@pytest.fixture(scope="session")
def catalog() -> WorkflowCatalog:
    """The bundled catalog, loaded once per run."""
    return load_catalog()


TWO_STEP_CATEGORY = {
    "id": "tiny",
    "name": "Tiny",
    "sub_categories": [
        {
            "id": "tiny-docker",
            "name": "Tiny Docker",
            "modules": [
                {
                    "id": "two-step",
                    "name": "Two Step",
                    "description": "Check docker, then list images",
                    "platform": "docker",
                    "steps": [
                        {"id": "verify", "title": "Verify", "instruction": "docker --version", "action": "verify-install"},
                        {"id": "images", "title": "Images", "instruction": "docker images", "action": "list-images"},
                    ],
                    "quiz": [
                        {
                            "id": "q1",
                            "question": "Which command lists images?",
                            "options": ["docker ps", "docker images"],
                            "correct_index": 1,
                        },
                        {
                            "id": "q2",
                            "question": "Which flag runs detached?",
                            "options": ["-d", "-i"],
                            "correct_index": 0,
                        },
                    ],
                }
            ],
        }
    ],
}


@pytest.fixture
def two_step_catalog(tmp_path: Path) -> WorkflowCatalog:
    (tmp_path / "tiny.json").write_text(json.dumps(TWO_STEP_CATEGORY), encoding="utf-8")
    return load_catalog_from_dir(tmp_path)
