"""
Settings for package generation and search.

Settings live in a small YAML mapping validated against
schemas/settings.schema.json, e.g.:

  context_radius: 40
  max_attempts: 3
  shuffle_answers: true
"""
from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List

import yaml
from jsonschema import Draft202012Validator

from qtiedit.errors import ConfigError

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"
SETTINGS_SCHEMA_PATH = SCHEMA_DIR / "settings.schema.json"


@dataclass(frozen=True)
class Settings:
    context_radius: int = 50
    default_points: float = 1.0
    max_attempts: str = "1"
    calculator_type: str = "none"
    shuffle_answers: bool = False
    scoring_policy: str = "keep_highest"
    quiz_type: str = "assignment"
    pretty_print: bool = True


DEFAULT_SETTINGS = Settings()


def load_schema(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def schema_problems(validator: Draft202012Validator, data: Any) -> List[str]:
    errors = sorted(validator.iter_errors(data), key=lambda e: (list(e.path), e.message))
    problems: List[str] = []
    for err in errors:
        loc = ".".join(str(p) for p in err.path) or "(root)"
        problems.append(f"{loc}: {err.message}")
    return problems


def settings_from_dict(data: Dict[str, Any], source="<dict>") -> Settings:
    validator = Draft202012Validator(load_schema(SETTINGS_SCHEMA_PATH))
    problems = schema_problems(validator, data)
    if problems:
        raise ConfigError(source, problems)
    known = {f.name for f in fields(Settings)}
    values = {k: v for k, v in data.items() if k in known}
    if "max_attempts" in values:
        values["max_attempts"] = str(values["max_attempts"])
    return replace(DEFAULT_SETTINGS, **values)


def load_settings(path: Path) -> Settings:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(path, [str(e)]) from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(path, [f"YAML parse error: {e}"]) from e
    if data is None:
        return DEFAULT_SETTINGS
    if not isinstance(data, dict):
        raise ConfigError(path, ["top-level YAML must be a mapping"])
    return settings_from_dict(data, path)
