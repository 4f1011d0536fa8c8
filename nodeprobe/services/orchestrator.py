"""Batch orchestrator: one batch check from input nodes to annotated nodes.

Pipeline: convert nodes → resolve targets → cache pre-check → start core →
wait for warm-up → probe nodes through the scheduler → stop core → merge
annotations back into the caller's dicts.

Nodes sharing a fingerprint (same stable configuration, same target set) are
probed once and share the outcome, which also keeps cache writes key-disjoint
across concurrent tasks. Every task returns its own ``NodeOutcome``; only the
orchestrator touches the caller's dicts, after probing has finished.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from functools import partial

from nodeprobe.cache.result_cache import InMemoryResultCache, ProbeResultCache, fingerprint
from nodeprobe.config.settings import ProbeSettings
from nodeprobe.http.client import HttpAdapter, describe_error
from nodeprobe.http.user_agents import UserAgentRandomizer
from nodeprobe.integration.core_client import ProxyCoreClient
from nodeprobe.middleware.error_handler import BatchCancelledError, ConfigurationError, NodeConversionError
from nodeprobe.models.node import ProxyNode
from nodeprobe.models.probe import NodeOutcome
from nodeprobe.models.requests import CheckOptions
from nodeprobe.services.node_converter import CoreNodeConverter, NodeConverter
from nodeprobe.services.probe_executor import ProbeExecutor
from nodeprobe.services.scheduler import Scheduler
from nodeprobe.targets.catalog import TargetCatalog

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """Summary of one batch, returned alongside the nodes."""

    total: int = 0
    supported: int = 0
    skipped: int = 0  # failed conversion, passed through unannotated
    probed: int = 0  # distinct fingerprints probed over the network
    cached: int = 0  # nodes answered from the cache
    available: int = 0
    failed_tasks: int = 0
    targets: list[str] = field(default_factory=list)
    short_circuited: bool = False
    core_pid: int | str | None = None
    duration_ms: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BatchResult:
    nodes: list[dict]
    report: BatchReport


class BatchOrchestrator:
    """Runs batch checks with shared long-lived collaborators.

    Parameters
    ----------
    settings:
        Service defaults; ``check()`` may override them per batch.
    core_client:
        Proxy core control client (built from *settings* when omitted).
    cache:
        Result cache (in-memory with the configured TTL when omitted).
    converter:
        Node converter (``CoreNodeConverter`` when omitted).
    catalog:
        Target catalog (built from *settings* when omitted).
    """

    def __init__(
        self,
        *,
        settings: ProbeSettings,
        core_client: ProxyCoreClient | None = None,
        cache: ProbeResultCache | None = None,
        converter: NodeConverter | None = None,
        catalog: TargetCatalog | None = None,
        user_agents: UserAgentRandomizer | None = None,
    ) -> None:
        self._settings = settings
        self._core = core_client or ProxyCoreClient(
            settings.core_api_url,
            authorization=settings.core_authorization,
            http=HttpAdapter(
                timeout_ms=settings.request_timeout_ms,
                retries=settings.retries,
                retry_delay_ms=settings.retry_delay_ms,
            ),
        )
        self._cache = cache or ProbeResultCache(InMemoryResultCache(ttl_seconds=settings.cache_ttl_seconds))
        self._converter = converter or CoreNodeConverter()
        self._catalog = catalog or TargetCatalog.from_settings(settings)
        self._user_agents = user_agents or UserAgentRandomizer()

        self._batches_run = 0
        self._last_report: BatchReport | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def check(
        self,
        nodes: list[dict],
        *,
        options: CheckOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Probe *nodes* and return them annotated.

        The returned list is *nodes* itself; probed dicts are updated in
        place. A configuration error (no targets) returns the input
        unchanged with ``report.error`` set.

        Raises
        ------
        CoreStartError
            If the proxy core could not be started.
        BatchCancelledError
            If *cancel_event* was set before probing finished (the core is
            still stopped).
        """
        started = time.monotonic()
        settings = options.apply(self._settings) if options else self._settings
        report = BatchReport(total=len(nodes))

        try:
            await self._run(nodes, settings, report, cancel_event)
        finally:
            report.duration_ms = round((time.monotonic() - started) * 1000, 1)
            self._batches_run += 1
            self._last_report = report

        logger.info(
            "Batch finished: %d/%d available (probed=%d, cached=%d, skipped=%d) in %.0fms",
            report.available,
            report.total,
            report.probed,
            report.cached,
            report.skipped,
            report.duration_ms,
        )
        return BatchResult(nodes=nodes, report=report)

    def get_stats(self) -> dict:
        return {
            "batches_run": self._batches_run,
            "last_batch": self._last_report.to_dict() if self._last_report else None,
            "cache": self._cache.get_stats(),
        }

    # ------------------------------------------------------------------
    # Internal pipeline
    # ------------------------------------------------------------------

    async def _run(
        self,
        nodes: list[dict],
        settings: ProbeSettings,
        report: BatchReport,
        cancel_event: asyncio.Event | None,
    ) -> None:
        proxy_nodes = self._convert(nodes)
        report.supported = len(proxy_nodes)
        report.skipped = len(nodes) - len(proxy_nodes)
        logger.info("Core supports %d/%d nodes", len(proxy_nodes), len(nodes))

        try:
            targets = self._catalog.resolve(settings.targets, settings.custom_urls)
        except ConfigurationError as exc:
            logger.error("Cannot probe: %s (requested=%s)", exc.message, settings.targets)
            report.error = exc.message
            return
        report.targets = [target.id for target in targets]
        if not proxy_nodes:
            return

        target_urls = [target.url for target in targets]
        groups: dict[str, list[ProxyNode]] = {}
        for node in proxy_nodes:
            groups.setdefault(fingerprint(node.config, target_urls), []).append(node)

        cache_failures = not settings.disable_failed_cache
        if settings.cache_enabled and self._fully_cached(groups, cache_failures):
            logger.info("Every node has a usable cached result, skipping the core")
            report.short_circuited = True
            outcomes = {
                key: self._cache.get_usable(key, cache_failures=cache_failures).to_outcome()  # type: ignore[union-attr]
                for key in groups
            }
            self._merge(nodes, groups, outcomes, settings, report)
            return

        keys = list(groups)
        representatives = [groups[key][0] for key in keys]
        executor = ProbeExecutor(
            targets=targets,
            http=HttpAdapter(
                timeout_ms=settings.request_timeout_ms,
                retries=settings.retries,
                retry_delay_ms=settings.retry_delay_ms,
            ),
            user_agents=self._user_agents,
            proxy_host=settings.core_host,
            method=settings.method,
            policy=settings.decision_policy,
            stop_on_first_failure=settings.stop_on_first_failure,
        )
        scheduler = Scheduler(concurrency=settings.concurrency, cancel_event=cancel_event)

        timeout_ms = settings.core_timeout_ms(len(representatives))
        async with self._core.session([node.config for node in representatives], timeout_ms) as session:
            report.core_pid = session.pid
            if settings.core_start_delay_ms:
                await self._warm_up(settings.core_start_delay_ms / 1000, cancel_event, len(keys))

            factories = [
                partial(self._check_node, executor, key, node, port, settings)
                for key, node, port in zip(keys, representatives, session.ports)
            ]
            results = await scheduler.run(factories)

        outcomes: dict[str, NodeOutcome] = {}
        for key, node, result in zip(keys, representatives, results):
            if isinstance(result, BaseException):
                report.failed_tasks += 1
                logger.error(
                    "[%s] probing task failed: %s",
                    node.name,
                    describe_error(result),
                    extra={"node": node.name, "error_reason": describe_error(result)},
                )
                outcomes[key] = NodeOutcome.failed(describe_error(result))
            else:
                outcomes[key] = result
                if not result.from_cache:
                    report.probed += 1

        self._merge(nodes, groups, outcomes, settings, report)

    @staticmethod
    async def _warm_up(delay: float, cancel_event: asyncio.Event | None, total: int) -> None:
        """Give the core *delay* seconds to open its listeners; a set *cancel_event* cuts the wait short."""
        logger.info("Waiting %.1fs for the core to warm up", delay)
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise BatchCancelledError("Batch cancelled while the core was warming up", finished=0, total=total)

    def _convert(self, nodes: list[dict]) -> list[ProxyNode]:
        proxy_nodes: list[ProxyNode] = []
        for index, raw in enumerate(nodes):
            try:
                config = self._converter.convert(raw)
            except NodeConversionError as exc:
                name = raw.get("name") if isinstance(raw, dict) else None
                logger.warning("Skipping node %r: %s", name, exc.message, extra={"node": name})
                continue
            proxy_nodes.append(ProxyNode.from_dict(index, raw, config))
        return proxy_nodes

    def _fully_cached(self, groups: dict[str, list[ProxyNode]], cache_failures: bool) -> bool:
        for key in groups:
            entry = self._cache.lookup(key)
            if not self._cache.usable(entry, cache_failures=cache_failures):
                return False
        return True

    async def _check_node(
        self,
        executor: ProbeExecutor,
        key: str,
        node: ProxyNode,
        port: int,
        settings: ProbeSettings,
    ) -> NodeOutcome:
        """Probe one node, consulting and updating the cache around the network work."""
        cache_failures = not settings.disable_failed_cache

        if settings.cache_enabled:
            entry = self._cache.get_usable(key, cache_failures=cache_failures)
            if entry is not None:
                logger.info(
                    "[%s] using cached %s",
                    node.name,
                    "success" if entry.available else "failure",
                    extra={"node": node.name, "fingerprint": key},
                )
                return entry.to_outcome()

        try:
            outcome = await executor.probe_node(node, port)
        except Exception as exc:
            logger.error(
                "[%s] unexpected error while probing: %s",
                node.name,
                describe_error(exc),
                extra={"node": node.name, "error_reason": describe_error(exc)},
            )
            outcome = NodeOutcome.failed(describe_error(exc))

        if settings.cache_enabled:
            self._cache.store(key, outcome, cache_failures=cache_failures)
        return outcome

    @staticmethod
    def _merge(
        nodes: list[dict],
        groups: dict[str, list[ProxyNode]],
        outcomes: dict[str, NodeOutcome],
        settings: ProbeSettings,
        report: BatchReport,
    ) -> None:
        for key, members in groups.items():
            outcome = outcomes[key]
            for node in members:
                node.annotate(outcome)
                node.merge_into(nodes[node.index], settings.name_prefix)
                if outcome.available:
                    report.available += 1
                if outcome.from_cache:
                    report.cached += 1
