"""
In-memory repository of form templates.

Templates can be seeded from a directory of JSON or YAML files, then
created, edited, toggled, duplicated and deleted by administrators.
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from oinstec.core.schema import FormTemplate, find_rule_problems

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = {".json", ".yaml", ".yml"}


def load_template_file(path: Path) -> FormTemplate:
    """Parse and validate a single template file.

    Raises:
        ValueError: If the file is not valid JSON/YAML or not a mapping.
        pydantic.ValidationError: If the content is not a valid template.
    """
    content = path.read_text(encoding="utf-8")

    if path.suffix == ".json":
        try:
            raw = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in '{path.name}': {e}") from e
    else:
        try:
            raw = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in '{path.name}': {e}") from e

    if not isinstance(raw, dict):
        raise ValueError(f"Template file '{path.name}' must contain a mapping")

    raw.setdefault("id", path.stem)
    return FormTemplate.model_validate(raw)


class TemplateRepository:
    """Thread-safe in-memory store of form templates keyed by ID."""

    def __init__(self):
        self._templates: dict[str, FormTemplate] = {}
        self._lock = threading.RLock()

    def load_directory(self, directory: Path) -> int:
        """Load every template file in ``directory``.

        Unreadable or invalid files are logged and skipped.

        Returns:
            The number of templates loaded.
        """
        if not directory.exists():
            logger.warning("Templates directory not found: %s", directory)
            return 0

        loaded = 0
        for path in sorted(directory.iterdir()):
            if path.suffix not in TEMPLATE_SUFFIXES:
                continue
            try:
                template = load_template_file(path)
            except (OSError, ValueError, ValidationError) as e:
                logger.warning("Skipping template file %s: %s", path.name, e)
                continue
            self._store(template)
            loaded += 1

        logger.info("Loaded %d template(s) from %s", loaded, directory)
        return loaded

    def list_templates(self, active_only: bool = False, search: str | None = None) -> list[FormTemplate]:
        """Return templates, optionally only active ones or matching a search term."""
        with self._lock:
            templates = list(self._templates.values())

        if active_only:
            templates = [t for t in templates if t.active]

        if search and search.strip():
            term = search.strip().lower()
            templates = [
                t for t in templates
                if term in t.name.lower() or term in t.description.lower()
            ]

        return templates

    def get(self, template_id: str) -> FormTemplate | None:
        with self._lock:
            return self._templates.get(template_id)

    def create(self, data: dict[str, Any] | FormTemplate) -> FormTemplate:
        """Validate and store a new template with a fresh ID and timestamps."""
        if isinstance(data, FormTemplate):
            data = data.model_dump(by_alias=True)

        now = datetime.now(timezone.utc)
        payload = dict(data)
        payload["id"] = payload.get("id") or f"plantilla_{uuid.uuid4().hex[:12]}"
        payload["createdAt"] = now
        payload["updatedAt"] = now
        payload.pop("created_at", None)
        payload.pop("updated_at", None)

        template = FormTemplate.model_validate(payload)
        with self._lock:
            if template.id in self._templates:
                raise ValueError(f"Template '{template.id}' already exists")
            self._store(template)
        logger.info("Created template '%s' (%s)", template.id, template.name)
        return template

    def update(self, template_id: str, changes: dict[str, Any]) -> FormTemplate | None:
        """Apply changes to an existing template. Returns None if not found."""
        with self._lock:
            current = self._templates.get(template_id)
            if current is None:
                return None

            payload = current.model_dump(by_alias=True)
            payload.update(_with_aliases(changes))
            payload["id"] = template_id
            payload["createdAt"] = current.created_at
            payload["updatedAt"] = datetime.now(timezone.utc)

            template = FormTemplate.model_validate(payload)
            self._store(template)
        return template

    def set_active(self, template_id: str, active: bool) -> FormTemplate | None:
        return self.update(template_id, {"active": active})

    def duplicate(self, template_id: str) -> FormTemplate | None:
        """Copy a template as a new, inactive version 1.0.0."""
        source = self.get(template_id)
        if source is None:
            return None

        payload = source.model_dump(by_alias=True)
        payload.update({
            "id": None,
            "name": f"{source.name} (Copia)",
            "version": "1.0.0",
            "active": False,
        })
        return self.create(payload)

    def delete(self, template_id: str) -> bool:
        """Delete a template. Returns True if it existed."""
        with self._lock:
            if template_id in self._templates:
                del self._templates[template_id]
                return True
            return False

    def count(self) -> int:
        with self._lock:
            return len(self._templates)

    def _store(self, template: FormTemplate) -> None:
        for problem in find_rule_problems(template):
            logger.warning("Template '%s': %s", template.id, problem)
        with self._lock:
            self._templates[template.id] = template


def _with_aliases(changes: dict[str, Any]) -> dict[str, Any]:
    """Rename snake_case keys (``created_by``) to their camelCase aliases."""
    aliases = {
        name: info.alias
        for name, info in FormTemplate.model_fields.items()
        if info.alias
    }
    return {aliases.get(key, key): value for key, value in changes.items()}
