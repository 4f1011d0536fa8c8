"""Declarative pass/fail rules for probe targets.

A rule is data, not code: the set of status codes that count as reachable and
an optional body pattern that overrides a passing status to a failure (region
locks and ban pages frequently come back as 200 or 403). Evaluation order is
fixed: body override first, then status membership.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from nodeprobe.models.probe import TargetCategory

REACHABLE_STATUSES: frozenset[int] = frozenset({200, 301, 302, 307, 308})

# 403 from these services means "reached the edge, login/API key required"
REACHABLE_OR_FORBIDDEN: frozenset[int] = REACHABLE_STATUSES | {403}

REGION_UNSUPPORTED = r"unsupported_country|not available in your country"
BLOCKED_OR_BANNED = r"\b(?:blocked|banned)\b"
REGION_NOT_AVAILABLE = (
    r"not (?:currently )?available in your (?:region|country)"
    r"|(?:isn't|is not) supported in your (?:region|country)"
)


@dataclass(frozen=True)
class TargetRule:
    """Pass/fail predicate over ``(status, body)``.

    ``pass_statuses`` wins over ``pass_range`` when both are set; a rule with
    neither never passes.
    """

    pass_statuses: frozenset[int] | None = None
    pass_range: tuple[int, int] | None = None  # [low, high)
    fail_pattern: re.Pattern[str] | None = None

    def evaluate(self, status: int, body: str) -> tuple[bool, str]:
        if self.fail_pattern is not None and body:
            match = self.fail_pattern.search(body)
            if match:
                return False, f"status {status}, body matched {match.group(0)!r}"

        if self.pass_statuses is not None:
            passed = status in self.pass_statuses
        elif self.pass_range is not None:
            low, high = self.pass_range
            passed = low <= status < high
        else:
            passed = False

        if passed:
            return True, f"status {status}"
        return False, f"unexpected status {status}"


_CATEGORY_DEFAULTS: dict[TargetCategory, tuple[frozenset[int] | None, str | None]] = {
    TargetCategory.CHAT: (REACHABLE_OR_FORBIDDEN, REGION_UNSUPPORTED),
    TargetCategory.LOGIN_GATED: (REACHABLE_OR_FORBIDDEN, BLOCKED_OR_BANNED),
    TargetCategory.REDIRECT_HEAVY: (REACHABLE_STATUSES, REGION_NOT_AVAILABLE),
    TargetCategory.CUSTOM: (None, None),
}


def build_rule(
    category: TargetCategory,
    *,
    pass_statuses: list[int] | None = None,
    fail_pattern: str | None = None,
) -> TargetRule:
    """Build the rule for *category*, applying optional per-target overrides.

    Custom targets pass on any 2xx/3xx status unless explicit
    ``pass_statuses`` are given.
    """
    default_statuses, default_pattern = _CATEGORY_DEFAULTS[category]

    statuses = frozenset(pass_statuses) if pass_statuses is not None else default_statuses
    pattern = fail_pattern if fail_pattern is not None else default_pattern

    return TargetRule(
        pass_statuses=statuses,
        pass_range=(200, 400) if statuses is None else None,
        fail_pattern=re.compile(pattern, re.IGNORECASE) if pattern else None,
    )
