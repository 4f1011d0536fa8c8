"""Target catalog: resolves requested target ids into probe targets.

Requested ids are case-insensitive, order-insensitive and de-duplicated.
Built-in ids (and their aliases) map to one target each; ``custom`` expands
to one target per user-supplied URL. Unrecognised ids contribute nothing.
The resolved list is always in catalog order (definitions first, then custom
URLs in the order given) so that per-node results are recorded in a stable
order regardless of how the request listed them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from urllib.parse import urlparse

from nodeprobe.config.settings import ProbeSettings
from nodeprobe.config.target_rules import TargetDefinition, load_target_definitions
from nodeprobe.middleware.error_handler import ConfigurationError
from nodeprobe.models.probe import ProbeTarget, TargetCategory
from nodeprobe.targets.rules import build_rule

logger = logging.getLogger(__name__)

CUSTOM_ID = "custom"


class TargetCatalog:
    """Known probe targets plus the alias table used to look them up."""

    def __init__(self, definitions: dict[str, TargetDefinition]) -> None:
        self._targets: dict[str, ProbeTarget] = {}
        self._aliases: dict[str, str] = {}

        for target_id, definition in definitions.items():
            self._targets[target_id] = ProbeTarget(
                id=target_id,
                name=definition.name,
                url=definition.url,
                category=definition.category,
                rule=build_rule(
                    definition.category,
                    pass_statuses=definition.pass_statuses,
                    fail_pattern=definition.fail_pattern,
                ),
            )
            self._aliases[target_id] = target_id
            for alias in definition.aliases:
                self._aliases.setdefault(alias.strip().lower(), target_id)

    @classmethod
    def from_settings(cls, settings: ProbeSettings) -> TargetCatalog:
        return cls(load_target_definitions(settings.targets_path))

    def known_ids(self) -> list[str]:
        return list(self._targets)

    def resolve(
        self,
        requested: Iterable[str],
        custom_urls: Iterable[str] = (),
    ) -> list[ProbeTarget]:
        """Return the active target list for *requested* ids.

        Raises
        ------
        ConfigurationError
            If nothing resolves (no known id and no usable custom URL).
        """
        requested = list(requested)
        wanted: set[str] = set()
        include_custom = False

        for raw in requested:
            key = raw.strip().lower()
            if key == CUSTOM_ID:
                include_custom = True
            elif key in self._aliases:
                wanted.add(self._aliases[key])
            elif key:
                logger.debug("Ignoring unknown target id %r", raw)

        targets = [target for target_id, target in self._targets.items() if target_id in wanted]
        if include_custom:
            targets.extend(_custom_targets(custom_urls))

        if not targets:
            raise ConfigurationError(
                "No probe targets resolved from the configured target list",
                requested=requested,
            )
        return targets


def _url_host(url: str) -> str | None:
    """Return the host:port part of an absolute http(s) URL, or None if it is unusable."""
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        return None
    try:
        parsed.port
    except ValueError:
        return None
    return parsed.netloc


def _custom_targets(urls: Iterable[str]) -> list[ProbeTarget]:
    rule = build_rule(TargetCategory.CUSTOM)
    targets: list[ProbeTarget] = []
    seen: set[str] = set()
    for raw_url in urls:
        url = raw_url.strip()
        if not url or url in seen:
            continue
        seen.add(url)
        host = _url_host(url)
        if host is None:
            logger.warning("Skipping custom URL %r: not an absolute http(s) URL", url)
            continue
        targets.append(
            ProbeTarget(
                id=f"{CUSTOM_ID}-{len(targets) + 1}",
                name=host,
                url=url,
                category=TargetCategory.CUSTOM,
                rule=rule,
            )
        )
    return targets
