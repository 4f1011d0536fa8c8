"""Unit tests for the batch orchestrator."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from fakes import CORE_PID, FakeHttp, make_node
from nodeprobe.config.settings import ProbeSettings
from nodeprobe.integration.core_client import ProxyCoreClient
from nodeprobe.middleware.error_handler import BatchCancelledError, CoreStartError, TransportError
from nodeprobe.models.probe import ProbeResponse
from nodeprobe.models.requests import CheckOptions
from nodeprobe.services.orchestrator import BatchOrchestrator

GPT_URL = "https://ios.chat.openai.com"
CLAUDE_URL = "https://claude.ai/login"


def _by_server(answers: dict[str, dict[str, ProbeResponse | Exception]]):
    """Responder answering per node server, then per target URL (default: 200)."""

    def responder(node: dict, url: str) -> ProbeResponse:
        answer = answers.get(node["server"], {}).get(url, ProbeResponse(200, "", 100.0))
        if isinstance(answer, Exception):
            raise answer
        return answer

    return responder


class TestCheck:
    @pytest.mark.asyncio
    async def test_annotates_nodes_in_place(self, orchestrator: BatchOrchestrator, fake_http: FakeHttp) -> None:
        fake_http.responder = _by_server(
            {
                "b.example.com": {
                    GPT_URL: ProbeResponse(403, "", 100.0),
                    CLAUDE_URL: ProbeResponse(200, "Access blocked", 100.0),
                }
            }
        )
        nodes = [make_node("A", "a.example.com"), make_node("B", "b.example.com")]

        result = await orchestrator.check(nodes, options=CheckOptions(targets=["gpt", "claude"]))

        assert result.nodes is nodes
        node_a, node_b = nodes
        assert node_a["name"] == "[AI] A"
        assert node_a["_ai_available"] is True
        assert node_a["_ai_pass_count"] == 2
        assert node_a["_ai_latency"] == 100.0
        assert node_b["name"] == "B"
        assert node_b["_ai_available"] is False
        assert node_b["_ai_pass_count"] == 1
        assert node_b["_ai_latency"] is None
        assert "blocked" in node_b["_ai_results"]["claude"]["message"]

        report = result.report
        assert (report.total, report.supported, report.probed, report.available) == (2, 2, 2, 1)
        assert report.targets == ["gpt", "claude"]
        assert report.core_pid == CORE_PID
        assert fake_http.stopped == [CORE_PID]

    @pytest.mark.asyncio
    async def test_core_receives_converted_configs(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        nodes = [make_node("A", "a.example.com", port="443")]
        await orchestrator.check(nodes)

        submitted = fake_http.started[0]
        assert submitted[0]["port"] == 443
        assert fake_http.start_timeouts == [10_000]
        # Probes go out with the configured method through the node's port
        assert {method for method, _, _ in fake_http.probes} == {"GET"}
        assert {port for _, _, port in fake_http.probes} == {20_000}
        assert len(fake_http.probes) == 3

    @pytest.mark.asyncio
    async def test_unconvertible_nodes_pass_through(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        bad = {"name": "weird", "type": "carrier-pigeon", "server": "x", "port": 1}
        nodes = [bad, make_node("A", "a.example.com")]

        result = await orchestrator.check(nodes)

        assert bad == {"name": "weird", "type": "carrier-pigeon", "server": "x", "port": 1}
        assert nodes[1]["_ai_available"] is True
        assert len(fake_http.started[0]) == 1
        assert result.report.skipped == 1

    @pytest.mark.asyncio
    async def test_no_convertible_nodes_starts_no_core(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        nodes = [{"name": "x", "type": "nope"}]
        result = await orchestrator.check(nodes)

        assert result.nodes == [{"name": "x", "type": "nope"}]
        assert fake_http.start_calls == 0

    @pytest.mark.asyncio
    async def test_empty_target_list_returns_input_unchanged(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        nodes = [make_node("A", "a.example.com")]
        before = [dict(node) for node in nodes]

        result = await orchestrator.check(nodes, options=CheckOptions(targets=["does-not-exist"]))

        assert result.nodes == before
        assert result.report.error is not None
        assert fake_http.start_calls == 0

    @pytest.mark.asyncio
    async def test_custom_urls(self, orchestrator: BatchOrchestrator, fake_http: FakeHttp) -> None:
        nodes = [make_node("A", "a.example.com")]

        result = await orchestrator.check(
            nodes,
            options=CheckOptions(targets=["custom"], custom_urls=["https://status.example.org/ping"]),
        )

        assert result.report.targets == ["custom-1"]
        assert [url for _, url, _ in fake_http.probes] == ["https://status.example.org/ping"]
        assert nodes[0]["_ai_available"] is True

    @pytest.mark.asyncio
    async def test_duplicate_configurations_are_probed_once(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        nodes = [make_node("A", "a.example.com"), make_node("A copy", "a.example.com", _source="sub-2")]

        result = await orchestrator.check(nodes, options=CheckOptions(targets=["gpt"]))

        assert len(fake_http.started[0]) == 1
        assert len(fake_http.probes) == 1
        assert nodes[0]["_ai_available"] is nodes[1]["_ai_available"] is True
        assert nodes[1]["name"] == "[AI] A copy"
        assert nodes[1]["_source"] == "sub-2"
        assert result.report.available == 2

    @pytest.mark.asyncio
    async def test_transport_errors_stay_with_their_node(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        fake_http.responder = _by_server({"b.example.com": {GPT_URL: TransportError("ConnectTimeout")}})
        nodes = [make_node("A", "a.example.com"), make_node("B", "b.example.com"), make_node("C", "c.example.com")]

        await orchestrator.check(nodes, options=CheckOptions(targets=["gpt"]))

        assert [node["_ai_available"] for node in nodes] == [True, False, True]
        assert nodes[1]["_ai_results"]["gpt"]["status"] == -1
        assert nodes[1]["_ai_results"]["gpt"]["latency_ms"] == -1.0

    @pytest.mark.asyncio
    async def test_unexpected_task_error_marks_node_unavailable(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        fake_http.responder = _by_server({"b.example.com": {GPT_URL: RuntimeError("adapter bug")}})
        nodes = [make_node("A", "a.example.com"), make_node("B", "b.example.com")]

        await orchestrator.check(nodes, options=CheckOptions(targets=["gpt"]))

        assert nodes[0]["_ai_available"] is True
        assert nodes[1]["_ai_available"] is False
        assert nodes[1]["_ai_results"] == {}
        assert "adapter bug" in nodes[1]["_ai_error"]
        assert nodes[0]["_ai_error"] is None
        assert fake_http.stopped == [CORE_PID]

    @pytest.mark.asyncio
    async def test_core_start_failure_aborts_batch(self, settings: ProbeSettings) -> None:
        fake_http = FakeHttp(start_error="ConnectError: refused")
        core = ProxyCoreClient(settings.core_api_url, http=fake_http)  # type: ignore[arg-type]
        orchestrator = BatchOrchestrator(settings=settings, core_client=core)

        with pytest.raises(CoreStartError):
            await orchestrator.check([make_node("A", "a.example.com")])

        assert fake_http.stopped == []

    @pytest.mark.asyncio
    async def test_core_stop_failure_does_not_fail_batch(self, settings: ProbeSettings) -> None:
        fake_http = FakeHttp(stop_status=500)
        core = ProxyCoreClient(settings.core_api_url, http=fake_http)  # type: ignore[arg-type]
        with patch("nodeprobe.services.orchestrator.HttpAdapter", return_value=fake_http):
            orchestrator = BatchOrchestrator(settings=settings, core_client=core)
            result = await orchestrator.check([make_node("A", "a.example.com")])

        assert result.nodes[0]["_ai_available"] is True
        assert fake_http.stopped == [CORE_PID]

    @pytest.mark.asyncio
    async def test_cancellation_still_stops_core(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        fake_http.delay = 0.05
        event = asyncio.Event()
        event.set()
        nodes = [make_node(f"N{i}", f"n{i}.example.com") for i in range(4)]

        with pytest.raises(BatchCancelledError):
            await orchestrator.check(nodes, cancel_event=event)

        assert fake_http.stopped == [CORE_PID]
        assert "_ai_available" not in nodes[0]

    @pytest.mark.asyncio
    async def test_cancel_during_warm_up_returns_promptly(self, settings: ProbeSettings, fake_http: FakeHttp) -> None:
        slow_start = settings.model_copy(update={"core_start_delay_ms": 60_000})
        core = ProxyCoreClient(slow_start.core_api_url, http=fake_http)  # type: ignore[arg-type]
        event = asyncio.Event()
        nodes = [make_node("A", "a.example.com"), make_node("B", "b.example.com")]

        with patch("nodeprobe.services.orchestrator.HttpAdapter", return_value=fake_http):
            orchestrator = BatchOrchestrator(settings=slow_start, core_client=core)
            asyncio.get_running_loop().call_later(0.01, event.set)
            with pytest.raises(BatchCancelledError) as exc_info:
                await asyncio.wait_for(orchestrator.check(nodes, cancel_event=event), timeout=5)

        assert exc_info.value.details == {"finished": 0, "total": 2}
        assert fake_http.probes == []
        assert fake_http.stopped == [CORE_PID]
        assert "_ai_available" not in nodes[0]

    @pytest.mark.asyncio
    async def test_warm_up_runs_to_completion_without_cancel(
        self, settings: ProbeSettings, fake_http: FakeHttp
    ) -> None:
        short_start = settings.model_copy(update={"core_start_delay_ms": 10})
        core = ProxyCoreClient(short_start.core_api_url, http=fake_http)  # type: ignore[arg-type]

        with patch("nodeprobe.services.orchestrator.HttpAdapter", return_value=fake_http):
            orchestrator = BatchOrchestrator(settings=short_start, core_client=core)
            result = await orchestrator.check([make_node("A", "a.example.com")], cancel_event=asyncio.Event())

        assert result.nodes[0]["_ai_available"] is True
        assert fake_http.stopped == [CORE_PID]

    @pytest.mark.asyncio
    async def test_target_error_reported_when_no_node_is_supported(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        nodes = [{"name": "weird", "type": "carrier-pigeon", "server": "x", "port": 1}]

        result = await orchestrator.check(nodes, options=CheckOptions(targets=["nothing"]))

        assert result.report.error is not None
        assert result.report.skipped == 1
        assert result.report.targets == []
        assert fake_http.start_calls == 0

    @pytest.mark.asyncio
    async def test_empty_batch_still_resolves_targets(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        result = await orchestrator.check([], options=CheckOptions(targets=["claude", "gpt"]))

        assert result.report.error is None
        assert result.report.targets == ["gpt", "claude"]
        assert fake_http.start_calls == 0

    @pytest.mark.asyncio
    async def test_concurrency_limit(self, orchestrator: BatchOrchestrator, fake_http: FakeHttp) -> None:
        fake_http.delay = 0.005
        nodes = [make_node(f"N{i}", f"n{i}.example.com") for i in range(10)]

        await orchestrator.check(nodes, options=CheckOptions(concurrency=3, targets=["gpt", "claude"]))

        assert 1 <= fake_http.max_in_flight <= 3
        assert len(fake_http.probes) == 20


class TestCaching:
    @pytest.mark.asyncio
    async def test_fully_cached_batch_skips_core(self, orchestrator: BatchOrchestrator, fake_http: FakeHttp) -> None:
        options = CheckOptions(cache_enabled=True, targets=["gpt"])
        first = [make_node("A", "a.example.com")]
        await orchestrator.check(first, options=options)

        second = [make_node("A renamed", "a.example.com")]
        result = await orchestrator.check(second, options=options)

        assert fake_http.start_calls == 1
        assert result.report.short_circuited is True
        assert result.report.cached == 1
        assert second[0]["_ai_available"] is True
        assert second[0]["_ai_results"] == first[0]["_ai_results"]
        assert second[0]["name"] == "[AI] A renamed"

    @pytest.mark.asyncio
    async def test_one_miss_runs_full_pipeline(self, orchestrator: BatchOrchestrator, fake_http: FakeHttp) -> None:
        options = CheckOptions(cache_enabled=True, targets=["gpt"])
        await orchestrator.check([make_node("A", "a.example.com")], options=options)

        nodes = [make_node("A", "a.example.com"), make_node("B", "b.example.com")]
        result = await orchestrator.check(nodes, options=options)

        assert fake_http.start_calls == 2
        # The cached node is still skipped by its own task
        assert [url for _, url, port in fake_http.probes[1:]] == [GPT_URL]
        assert result.report.cached == 1
        assert result.report.probed == 1

    @pytest.mark.asyncio
    async def test_failures_are_reprobed_when_failed_cache_disabled(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        fake_http.responder = _by_server({"a.example.com": {GPT_URL: ProbeResponse(500, "", 10.0)}})
        options = CheckOptions(cache_enabled=True, disable_failed_cache=True, targets=["gpt"])

        await orchestrator.check([make_node("A", "a.example.com")], options=options)
        await orchestrator.check([make_node("A", "a.example.com")], options=options)

        assert fake_http.start_calls == 2

    @pytest.mark.asyncio
    async def test_cached_failures_are_reused_by_default(
        self, orchestrator: BatchOrchestrator, fake_http: FakeHttp
    ) -> None:
        fake_http.responder = _by_server({"a.example.com": {GPT_URL: ProbeResponse(500, "", 10.0)}})
        options = CheckOptions(cache_enabled=True, targets=["gpt"])

        await orchestrator.check([make_node("A", "a.example.com")], options=options)
        result = await orchestrator.check([make_node("A", "a.example.com")], options=options)

        assert fake_http.start_calls == 1
        assert result.nodes[0]["_ai_available"] is False

    @pytest.mark.asyncio
    async def test_changing_targets_invalidates(self, orchestrator: BatchOrchestrator, fake_http: FakeHttp) -> None:
        await orchestrator.check([make_node("A", "a.example.com")], options=CheckOptions(cache_enabled=True, targets=["gpt"]))
        await orchestrator.check(
            [make_node("A", "a.example.com")], options=CheckOptions(cache_enabled=True, targets=["gpt", "claude"])
        )

        assert fake_http.start_calls == 2

    @pytest.mark.asyncio
    async def test_stats(self, orchestrator: BatchOrchestrator) -> None:
        await orchestrator.check([make_node("A", "a.example.com")], options=CheckOptions(cache_enabled=True))

        stats = orchestrator.get_stats()

        assert stats["batches_run"] == 1
        assert stats["last_batch"]["available"] == 1
        assert stats["cache"]["writes"] == 1
