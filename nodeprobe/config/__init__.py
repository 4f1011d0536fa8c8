"""Configuration module: settings and probe target definitions."""

from nodeprobe.config.settings import DecisionPolicy, ProbeSettings
from nodeprobe.config.target_rules import (
    BUILTIN_TARGETS,
    TargetDefinition,
    load_target_definitions,
)

__all__ = [
    "BUILTIN_TARGETS",
    "DecisionPolicy",
    "ProbeSettings",
    "TargetDefinition",
    "load_target_definitions",
]
