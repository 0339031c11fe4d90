"""Load the declarative workflow catalog from bundled JSON resources."""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

from .models import PLATFORMS, Category, Module, QuizQuestion, Step

CONTENT_PACKAGE = "opsnavigator.content.categories"


@dataclass(frozen=True)
class WorkflowCatalog:
    """Read-only index of categories and their ordered modules."""

    categories: dict[str, Category]
    modules: dict[str, Module]

    def get_category(self, category_id: str) -> Category | None:
        return self.categories.get(category_id)

    def get_module(self, category_id: str, module_id: str) -> Module | None:
        """Return a module only when it belongs to the given category."""
        category = self.categories.get(category_id)
        if category is None or module_id not in category.module_ids:
            return None
        return self.modules.get(module_id)

    def modules_for_category(self, category_id: str) -> list[Module]:
        category = self.categories.get(category_id)
        if category is None:
            return []
        return [self.modules[module_id] for module_id in category.module_ids]

    def category_of(self, module_id: str) -> Category | None:
        for category in self.categories.values():
            if module_id in category.module_ids:
                return category
        return None


def _step_from_dict(module_id: str, raw: dict[str, Any]) -> Step:
    """Build a step from raw JSON content."""
    action = str(raw.get("action", "")).strip()
    if not action:
        raise ValueError(f"Step '{raw.get('id', '<unknown>')}' in module '{module_id}' has no action.")
    tip = str(raw["tip"]).strip() if raw.get("tip") else None
    warning = str(raw["warning"]).strip() if raw.get("warning") else None
    return Step(
        id=str(raw["id"]),
        title=str(raw["title"]),
        description=str(raw.get("instruction", raw.get("description", ""))),
        action=action,
        tip=tip,
        warning=warning,
    )


def _question_from_dict(module_id: str, raw: dict[str, Any]) -> QuizQuestion:
    options = [str(option) for option in raw.get("options", [])]
    correct_index = int(raw.get("correct_index", -1))
    if not 0 <= correct_index < len(options):
        raise ValueError(f"Quiz question '{raw.get('id', '<unknown>')}' in module '{module_id}' has no valid answer.")
    return QuizQuestion(
        id=str(raw["id"]),
        question=str(raw["question"]),
        options=options,
        correct_index=correct_index,
        explanation=str(raw.get("explanation", "")),
    )


def _module_from_dict(raw: dict[str, Any]) -> Module:
    """Build a module from raw JSON content."""
    module_id = str(raw["id"])
    platform = str(raw.get("platform", "")).strip().lower()
    if platform not in PLATFORMS:
        raise ValueError(f"Module '{module_id}' has unknown platform '{platform}'.")
    steps = [_step_from_dict(module_id, item) for item in raw.get("steps", [])]
    if not steps:
        raise ValueError(f"Module '{module_id}' has no steps.")
    seen: set[str] = set()
    for step in steps:
        if step.id in seen:
            raise ValueError(f"Duplicate step id '{step.id}' in module '{module_id}'.")
        seen.add(step.id)
    return Module(
        id=module_id,
        name=str(raw["name"]),
        description=str(raw.get("description", "")),
        platform=platform,
        steps=steps,
        quiz=[_question_from_dict(module_id, item) for item in raw.get("quiz", [])],
        fixture=str(raw["fixture"]) if raw.get("fixture") else None,
    )


def _category_from_dict(raw: dict[str, Any], modules: dict[str, Module]) -> Category:
    """Build a category, registering its modules in sub-category order."""
    category_id = str(raw["id"])
    module_ids: list[str] = []
    for sub_category in raw.get("sub_categories", []):
        for item in sub_category.get("modules", []):
            module = _module_from_dict(item)
            if module.id in modules:
                raise ValueError(f"Duplicate module id: {module.id}")
            modules[module.id] = module
            module_ids.append(module.id)
    return Category(id=category_id, name=str(raw["name"]), module_ids=module_ids)


def _build_catalog(payloads: list[dict[str, Any]]) -> WorkflowCatalog:
    categories: dict[str, Category] = {}
    modules: dict[str, Module] = {}
    for raw in payloads:
        category = _category_from_dict(raw, modules)
        if category.id in categories:
            raise ValueError(f"Duplicate category id: {category.id}")
        categories[category.id] = category
    return WorkflowCatalog(categories=categories, modules=modules)


def load_catalog() -> WorkflowCatalog:
    """Load the bundled catalog."""
    entries = sorted(
        (entry for entry in resources.files(CONTENT_PACKAGE).iterdir() if entry.name.endswith(".json")),
        key=lambda entry: entry.name,
    )
    return _build_catalog([json.loads(entry.read_text(encoding="utf-8-sig")) for entry in entries])


def load_catalog_from_dir(path: Path) -> WorkflowCatalog:
    """Load a catalog from a directory for tests/tools."""
    return _build_catalog(
        [json.loads(file_path.read_text(encoding="utf-8-sig")) for file_path in sorted(path.glob("*.json"))]
    )
