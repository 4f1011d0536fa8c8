"""Probe target definitions and YAML loader.

Provides typed Pydantic models for probe target definitions, the built-in
platform catalog, and a loader that overlays definitions from a YAML file.

YAML layout::

    targets:
      gpt:
        url: https://chatgpt.com
      perplexity:
        name: Perplexity
        url: https://www.perplexity.ai
        category: login_gated
        aliases: [pplx]
        pass_statuses: [200, 403]
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from nodeprobe.models.probe import TargetCategory

logger = logging.getLogger(__name__)


class TargetDefinition(BaseModel):
    """Declarative description of one built-in or configured probe target."""

    name: str
    url: str = Field(..., min_length=1)
    category: TargetCategory
    aliases: list[str] = []
    pass_statuses: list[int] | None = None
    fail_pattern: str | None = None

    @field_validator("fail_pattern")
    @classmethod
    def _pattern_compiles(cls, value: str | None) -> str | None:
        if value:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid fail_pattern: {exc}") from exc
        return value

    @field_validator("category", mode="before")
    @classmethod
    def _custom_is_reserved(cls, value: object) -> object:
        if value == TargetCategory.CUSTOM or value == "custom":
            raise ValueError("category 'custom' is reserved for custom_urls")
        return value


BUILTIN_TARGETS: dict[str, TargetDefinition] = {
    "gpt": TargetDefinition(
        name="ChatGPT",
        url="https://ios.chat.openai.com",
        category=TargetCategory.CHAT,
        aliases=["openai", "chatgpt"],
    ),
    "claude": TargetDefinition(
        name="Claude",
        url="https://claude.ai/login",
        category=TargetCategory.LOGIN_GATED,
        aliases=["anthropic"],
    ),
    "gemini": TargetDefinition(
        name="Gemini",
        url="https://gemini.google.com",
        category=TargetCategory.REDIRECT_HEAVY,
        aliases=["google", "bard"],
    ),
}


def load_target_definitions(yaml_path: str | None) -> dict[str, TargetDefinition]:
    """Return the built-in targets overlaid with definitions from *yaml_path*.

    Args:
        yaml_path: Path to the YAML file, or ``None`` for built-ins only.

    Returns:
        A dict mapping target ids to definitions, built-ins first. A file
        entry with a built-in id replaces that built-in (fields it omits are
        taken from the built-in). Missing or malformed files yield the
        built-ins unchanged.
    """
    definitions = dict(BUILTIN_TARGETS)
    if yaml_path is None:
        return definitions

    path = Path(yaml_path)
    if not path.exists():
        logger.warning("Target definitions file not found at %s, using built-in targets", yaml_path)
        return definitions

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse target definitions YAML at %s: %s", yaml_path, exc)
        return definitions

    if not isinstance(raw, dict) or not isinstance(raw.get("targets"), dict):
        logger.warning("Target definitions YAML missing 'targets' mapping, using built-in targets")
        return definitions

    for target_id, config in raw["targets"].items():
        key = str(target_id).strip().lower()
        if key == "custom":
            logger.error("Target id 'custom' is reserved, skipping")
            continue
        if config is not None and not isinstance(config, dict):
            logger.error("Target definition '%s' is not a mapping, skipping", key)
            continue
        base = BUILTIN_TARGETS.get(key)
        merged = {**base.model_dump(), **(config or {})} if base else (config or {})
        try:
            definitions[key] = TargetDefinition.model_validate(merged)
        except ValidationError as exc:
            logger.error("Invalid target definition '%s': %s, skipping", key, exc)

    return definitions
