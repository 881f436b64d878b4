"""YAML-based prompt template loader."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Dict

import yaml  # type: ignore[import-untyped]

TEMPLATES_PATH = Path(__file__).with_name("templates.yaml")


class PromptLoadError(RuntimeError):
    pass


@lru_cache(maxsize=4)
def load_templates(path: Path = TEMPLATES_PATH) -> Dict[str, Template]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise PromptLoadError(f"cannot load prompt templates from {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise PromptLoadError(f"{path} must contain a mapping of templates")
    return {str(name): Template(str(body)) for name, body in data.items()}


def render(name: str, **values: object) -> str:
    templates = load_templates()
    if name not in templates:
        raise PromptLoadError(f"unknown prompt template: {name}")
    return templates[name].safe_substitute(**values)
