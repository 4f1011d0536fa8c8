"""Probe executor: checks every active target through one node.

A node's targets are probed one after another through the node's single local
port (concurrent streams through one listener make slow nodes look dead);
parallelism happens across nodes, in the scheduler.

For each target: pick a browser user agent → send the request through
``http://<core_host>:<port>`` → apply the target's rule → record a
``ProbeOutcome``. The per-node result folds those outcomes with the decision
policy:

- ``all``: available iff every target passed; latency is reported only for
  available nodes.
- ``any``: available iff at least one target passed.

Latency is the mean over passed targets only.
"""

from __future__ import annotations

import logging

from nodeprobe.config.settings import DecisionPolicy
from nodeprobe.http.client import HttpAdapter
from nodeprobe.http.user_agents import UserAgentRandomizer
from nodeprobe.middleware.error_handler import TransportError
from nodeprobe.models.node import ProxyNode
from nodeprobe.models.probe import NodeOutcome, ProbeOutcome, ProbeTarget

logger = logging.getLogger(__name__)


class ProbeExecutor:
    """Runs the probes for single nodes.

    Dependencies are injected via the constructor so the executor is
    testable without a proxy core or network calls.
    """

    def __init__(
        self,
        *,
        targets: list[ProbeTarget],
        http: HttpAdapter,
        user_agents: UserAgentRandomizer,
        proxy_host: str = "127.0.0.1",
        method: str = "GET",
        policy: DecisionPolicy = DecisionPolicy.ALL,
        stop_on_first_failure: bool = False,
    ) -> None:
        self._targets = list(targets)
        self._http = http
        self._user_agents = user_agents
        self._proxy_host = proxy_host
        self._method = method.upper()
        self._policy = policy
        self._stop_on_first_failure = stop_on_first_failure

    @property
    def targets(self) -> list[ProbeTarget]:
        return list(self._targets)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def probe(self, target: ProbeTarget, port: int) -> ProbeOutcome:
        """Probe *target* through the local listener on *port*."""
        try:
            response = await self._http.request(
                self._method,
                target.url,
                proxy=f"http://{self._proxy_host}:{port}",
                headers={"User-Agent": self._user_agents.pick()},
            )
        except TransportError as exc:
            return ProbeOutcome.transport_error(exc.message)

        passed, message = target.evaluate(response.status, response.body)
        return ProbeOutcome(
            status=response.status,
            latency_ms=round(response.latency_ms, 1),
            passed=passed,
            message=message,
        )

    async def probe_node(self, node: ProxyNode, port: int) -> NodeOutcome:
        """Probe every active target for *node*, in catalog order."""
        results: dict[str, ProbeOutcome] = {}

        for target in self._targets:
            outcome = await self.probe(target, port)
            results[target.id] = outcome

            log_extra = {
                "node": node.name,
                "target": target.id,
                "status": outcome.status,
                "latency_ms": outcome.latency_ms,
            }
            if outcome.passed:
                logger.info("[%s] -> [%s] passed (%s)", node.name, target.name, outcome.message, extra=log_extra)
            else:
                logger.info("[%s] -> [%s] failed (%s)", node.name, target.name, outcome.message, extra=log_extra)
                if self._stop_on_first_failure and self._policy is DecisionPolicy.ALL:
                    break

        return self.decide(results)

    def decide(self, results: dict[str, ProbeOutcome]) -> NodeOutcome:
        """Fold per-target outcomes into node availability under the configured policy."""
        passed = [outcome for outcome in results.values() if outcome.passed]
        pass_count = len(passed)

        if self._policy is DecisionPolicy.ANY:
            available = pass_count > 0
        else:
            available = pass_count == len(self._targets) and pass_count > 0

        latency_ms: float | None = None
        if available and passed:
            latency_ms = round(sum(outcome.latency_ms for outcome in passed) / pass_count, 1)

        return NodeOutcome(
            available=available,
            pass_count=pass_count,
            latency_ms=latency_ms,
            results=results,
        )
