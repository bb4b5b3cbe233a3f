"""
Configuration Loader (``school_config.loader``).

Responsibility
--------------
Loads the migration YAML file (and the separate group-override file it may
reference) and parses them into typed ``school_config.schema`` dataclass
instances.

Invariants enforced
-------------------
* Every parse error raises ``ConfigurationError`` naming the offending key;
  no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* Relative paths are resolved against the directory of the file that
  declares them, never against the process working directory.
* ``DATABASE_URL`` in the environment overrides ``database_url``.

Failure modes
-------------
* Missing YAML file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` chained from ``yaml.YAMLError``.
* Missing or mistyped keys  -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from school_config.schema import (
    DEFAULT_EVALUATION_TEMPLATES,
    KNOWN_EXTRACTS,
    QUOTING_MODES,
    EvaluationTemplate,
    ExtractSource,
    GroupOverride,
    ManualOverride,
    MigrationConfig,
)
from school_kernel.exceptions import ConfigurationError

_EVALUATION_KINDS = ("intermediate", "exam", "final")
_OVERRIDE_ENTITIES = ("professor", "student", "discipline")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML document is empty).
    Raises:
        ConfigurationError: if the file is missing, unreadable, not valid
            YAML, or its top level is not a mapping.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return data


def parse_date(value: Any, key: str) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid date {value!r}", key=key) from exc
    raise ConfigurationError(f"Cannot parse date from {value!r}", key=key)


def _int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Expected an integer, got {value!r}", key=key)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Expected an integer, got {value!r}", key=key) from exc


def _resolve(base_dir: Path, value: str | os.PathLike) -> Path:
    path = Path(value)
    return path if path.is_absolute() else (base_dir / path)


def parse_extracts(data: Any, source_dir: Path) -> tuple[ExtractSource, ...]:
    """
    Parse the ``extracts`` mapping.

    Each entry is either a bare file name or a mapping with ``file`` and
    optional ``encoding``, ``delimiter``, ``has_header`` and ``quoting``.
    """
    if data is None:
        return ()
    if not isinstance(data, Mapping):
        raise ConfigurationError("extracts must be a mapping", key="extracts")

    sources = []
    for name, spec in data.items():
        if name not in KNOWN_EXTRACTS:
            raise ConfigurationError(
                f"Unknown extract {name!r}; expected one of {', '.join(KNOWN_EXTRACTS)}",
                key="extracts",
            )
        if isinstance(spec, str):
            spec = {"file": spec}
        if not isinstance(spec, Mapping) or "file" not in spec:
            raise ConfigurationError("extract needs a 'file'", key=f"extracts.{name}")

        delimiter = str(spec.get("delimiter", ";"))
        if len(delimiter) != 1:
            raise ConfigurationError(
                f"delimiter must be one character, got {delimiter!r}",
                key=f"extracts.{name}.delimiter",
            )
        quoting = str(spec.get("quoting", "minimal")).lower()
        if quoting not in QUOTING_MODES:
            raise ConfigurationError(
                f"quoting must be one of {', '.join(QUOTING_MODES)}, got {quoting!r}",
                key=f"extracts.{name}.quoting",
            )
        sources.append(
            ExtractSource(
                name=name,
                path=_resolve(source_dir, spec["file"]),
                encoding=str(spec.get("encoding", "utf-8")),
                delimiter=delimiter,
                has_header=bool(spec.get("has_header", True)),
                quoting=quoting,
            )
        )
    return tuple(sources)


def parse_evaluation_templates(data: Any) -> tuple[EvaluationTemplate, ...]:
    """Parse ``evaluation_templates``; absent means the built-in defaults."""
    if data is None:
        return DEFAULT_EVALUATION_TEMPLATES
    if not isinstance(data, list):
        raise ConfigurationError("must be a list", key="evaluation_templates")

    templates = []
    for i, item in enumerate(data):
        key = f"evaluation_templates[{i}]"
        if not isinstance(item, Mapping):
            raise ConfigurationError("must be a mapping", key=key)
        try:
            kind, name, when = item["kind"], item["name"], item["date"]
        except KeyError as exc:
            raise ConfigurationError(f"missing {exc.args[0]!r}", key=key) from exc
        if kind not in _EVALUATION_KINDS:
            raise ConfigurationError(f"unknown kind {kind!r}", key=key)
        templates.append(EvaluationTemplate(kind, str(name), parse_date(when, key)))

    kinds = [t.kind for t in templates]
    if sorted(kinds) != sorted(_EVALUATION_KINDS):
        raise ConfigurationError(
            "exactly one template per kind (intermediate, exam, final) is required",
            key="evaluation_templates",
        )
    names = [t.name for t in templates]
    if len(set(names)) != len(names):
        raise ConfigurationError("template names must be distinct", key="evaluation_templates")
    return tuple(templates)


def parse_group_overrides(data: Any, key: str = "group_overrides") -> tuple[GroupOverride, ...]:
    """
    Parse group overrides.

    Accepts either a mapping ``{old_group: course_id}`` or a list of
    mappings with ``old_group``, ``course_id`` and optional ``semester``
    and ``note``.
    """
    if data is None:
        return ()
    if isinstance(data, Mapping):
        return tuple(
            GroupOverride(old_group=str(group), course_id=_int(course, f"{key}.{group}"))
            for group, course in data.items()
        )
    if not isinstance(data, list):
        raise ConfigurationError("must be a mapping or a list", key=key)

    overrides = []
    for i, item in enumerate(data):
        item_key = f"{key}[{i}]"
        if not isinstance(item, Mapping) or "old_group" not in item or "course_id" not in item:
            raise ConfigurationError("needs 'old_group' and 'course_id'", key=item_key)
        semester = _int(item.get("semester", 1), f"{item_key}.semester")
        if not 1 <= semester <= 12:
            raise ConfigurationError(f"semester {semester} outside 1..12", key=item_key)
        overrides.append(
            GroupOverride(
                old_group=str(item["old_group"]),
                course_id=_int(item["course_id"], f"{item_key}.course_id"),
                semester=semester,
                note=str(item.get("note", "")),
            )
        )
    return tuple(overrides)


def load_group_overrides(path: Path) -> tuple[GroupOverride, ...]:
    """
    Load an operator-reviewed group override file.

    The file holds a top-level ``overrides`` key in any form accepted by
    ``parse_group_overrides``.
    """
    data = load_yaml_file(path)
    return parse_group_overrides(data.get("overrides"), key=f"{path.name}:overrides")


def parse_manual_overrides(data: Any) -> tuple[ManualOverride, ...]:
    """Parse ``manual_overrides`` (list of entity/old_key/new_id mappings)."""
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ConfigurationError("must be a list", key="manual_overrides")

    overrides = []
    for i, item in enumerate(data):
        key = f"manual_overrides[{i}]"
        if not isinstance(item, Mapping) or "entity" not in item or "old_key" not in item:
            raise ConfigurationError("needs 'entity' and 'old_key'", key=key)
        entity = item["entity"]
        if entity not in _OVERRIDE_ENTITIES:
            raise ConfigurationError(f"unknown entity {entity!r}", key=key)
        key_kind = item.get("key_kind", "name")
        if key_kind not in ("name", "code"):
            raise ConfigurationError(f"unknown key_kind {key_kind!r}", key=key)
        new_id = item.get("new_id")
        overrides.append(
            ManualOverride(
                entity=entity,
                old_key=str(item["old_key"]),
                new_id=None if new_id is None else _int(new_id, f"{key}.new_id"),
                key_kind=key_kind,
            )
        )
    return tuple(overrides)


def parse_migration_config(
    data: dict[str, Any],
    base_dir: Path,
    environ: Mapping[str, str] | None = None,
) -> MigrationConfig:
    """
    Parse a ``MigrationConfig`` from a dict.

    Preconditions:
        - ``data`` is the top-level mapping of a migration YAML file.
        - ``base_dir`` is the directory relative paths are resolved against.
    Raises:
        ConfigurationError: on any missing or invalid key.
    """
    environ = os.environ if environ is None else environ

    database_url = environ.get("DATABASE_URL") or data.get("database_url")
    if not database_url:
        raise ConfigurationError(
            "database_url is required (or set DATABASE_URL)", key="database_url"
        )

    source_dir = _resolve(base_dir, data.get("source_dir", "."))

    batch_size = _int(data.get("batch_size", 1000), "batch_size")
    if batch_size < 1:
        raise ConfigurationError("must be positive", key="batch_size")

    prefixes = data.get("course_prefixes") or []
    if not isinstance(prefixes, list):
        raise ConfigurationError("must be a list", key="course_prefixes")

    overrides_file = data.get("group_overrides_file")

    return MigrationConfig(
        database_url=str(database_url),
        source_dir=source_dir,
        extracts=parse_extracts(data.get("extracts"), source_dir),
        batch_size=batch_size,
        class_year=_int(data.get("class_year", 2024), "class_year"),
        fallback_teacher_name=str(data.get("fallback_teacher_name", "Sistema Migração")),
        seed_teachers=bool(data.get("seed_teachers", False)),
        course_prefixes=tuple(str(p) for p in prefixes),
        evaluation_templates=parse_evaluation_templates(data.get("evaluation_templates")),
        group_overrides=parse_group_overrides(data.get("group_overrides")),
        group_overrides_file=_resolve(base_dir, overrides_file) if overrides_file else None,
        manual_overrides=parse_manual_overrides(data.get("manual_overrides")),
        echo_sql=bool(data.get("echo_sql", False)),
    )


def load_migration_config(
    path: Path | str,
    environ: Mapping[str, str] | None = None,
) -> MigrationConfig:
    """
    Load and parse the migration configuration file.

    Postconditions:
        - Returns a ``MigrationConfig`` with every path absolute or relative
          to the config file's directory.
        - ``config_path`` records where the configuration came from.
    Raises:
        ConfigurationError: if the file is missing or invalid.
    """
    path = Path(path)
    data = load_yaml_file(path)
    config = parse_migration_config(data, path.parent, environ)
    return replace(config, config_path=path)
