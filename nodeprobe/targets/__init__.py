"""Probe target catalog and pass/fail rules."""

from nodeprobe.targets.catalog import CUSTOM_ID, TargetCatalog
from nodeprobe.targets.rules import TargetRule, build_rule

__all__ = ["CUSTOM_ID", "TargetCatalog", "TargetRule", "build_rule"]
