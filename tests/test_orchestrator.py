"""Tests for the orchestration facade: fan-out, history, links, and credentials."""

import asyncio
import logging

import pytest

from agentic_os import events
from agentic_os.errors import ProviderError, ValidationError
from agentic_os.models import CorrectionKind, DispatchOutcome, LinkStatus, NodeStatus, Provider
from agentic_os.orchestrator import FanOutBatch, Orchestrator


def _run(coro):
    return asyncio.run(coro)


class TestFanOut:
    def test_one_good_key_one_bad_key(self, make_call, memory_store):
        call = make_call(
            replies={
                Provider.OPENAI: ProviderError("Incorrect API key provided", "openai"),
                Provider.GEMINI: "pong",
            }
        )
        orch = Orchestrator(provider_call=call, credentials=memory_store)

        entry = _run(orch.fan_out("ping", ["openai", "gemini"]))

        by_provider = {n.provider: n for n in orch.nodes}
        assert len(orch.nodes) == 2
        assert by_provider[Provider.OPENAI].status is NodeStatus.FAILED
        assert by_provider[Provider.OPENAI].error == "Incorrect API key provided"
        assert by_provider[Provider.GEMINI].status is NodeStatus.SUCCEEDED
        assert by_provider[Provider.GEMINI].output == "pong"

        assert orch.history == (entry,)
        assert entry.prompt == "ping"
        assert entry.providers == (Provider.OPENAI, Provider.GEMINI)
        assert {n.id for n in entry.responses} == {n.id for n in orch.nodes}

    def test_pending_nodes_exist_before_any_reply(self, orchestrator):
        async def scenario():
            batch = orchestrator.start_fan_out("hi", [Provider.QWEN, Provider.OPENAI])
            statuses = [n.status for n in orchestrator.nodes]
            providers = [n.provider for n in orchestrator.nodes]
            await batch.wait()
            return statuses, providers

        statuses, providers = _run(scenario())

        assert statuses == [NodeStatus.PENDING, NodeStatus.PENDING]
        assert providers == [Provider.QWEN, Provider.OPENAI]

    def test_node_count_matches_providers_sent(self, orchestrator):
        async def scenario():
            await orchestrator.fan_out("one", list(Provider))
            await orchestrator.fan_out("two", [Provider.GEMINI])

        _run(scenario())

        assert len(orchestrator.nodes) == len(Provider) + 1
        assert len(orchestrator.history) == 2
        assert [e.prompt for e in orchestrator.history] == ["two", "one"]

    def test_duplicate_providers_are_sent_once(self, orchestrator, scripted_call):
        _run(orchestrator.fan_out("hi", ["gemini", "gemini"]))

        assert len(orchestrator.nodes) == 1
        assert len(scripted_call.calls) == 1

    @pytest.mark.parametrize("prompt, providers", [("", ["openai"]), ("   ", ["openai"]), ("hi", [])])
    def test_invalid_request_changes_nothing(self, orchestrator, scripted_call, prompt, providers):
        seen = []
        orchestrator.bus.subscribe(seen.append)

        with pytest.raises(ValidationError):
            _run(orchestrator.fan_out(prompt, providers))

        assert orchestrator.nodes == ()
        assert orchestrator.history == ()
        assert scripted_call.calls == []
        assert seen == []

    def test_timeout_fails_only_the_slow_provider(self, make_call, memory_store):
        call = make_call(delays={Provider.DEEPSEEK: 5.0})
        orch = Orchestrator(provider_call=call, credentials=memory_store, timeout=0.05)

        _run(orch.fan_out("hi", ["deepseek", "qwen"]))

        by_provider = {n.provider: n for n in orch.nodes}
        assert by_provider[Provider.DEEPSEEK].status is NodeStatus.FAILED
        assert by_provider[Provider.DEEPSEEK].error == "timeout"
        assert by_provider[Provider.QWEN].status is NodeStatus.SUCCEEDED

    def test_overlapping_batches_to_same_provider(self, memory_store):
        async def call(provider, prompt):
            # The first prompt answers after the second one
            await asyncio.sleep(0.05 if prompt == "first" else 0)
            return f"answer to {prompt}"

        orch = Orchestrator(provider_call=call, credentials=memory_store)

        async def scenario():
            first = orch.start_fan_out("first", ["openai"])
            second = orch.start_fan_out("second", ["openai"])
            await asyncio.gather(first.wait(), second.wait())
            return first, second

        first, second = _run(scenario())

        assert orch.get_node(first.nodes[0].id).output == "answer to first"
        assert orch.get_node(second.nodes[0].id).output == "answer to second"
        assert len(orch.history) == 2

    def test_node_removed_while_in_flight(self, make_call, memory_store):
        call = make_call(delays={Provider.OPENAI: 0.05})
        orch = Orchestrator(provider_call=call, credentials=memory_store)

        async def scenario():
            batch = orch.start_fan_out("hi", ["openai", "gemini"])
            openai_node = batch.nodes[0]
            orch.remove_node(openai_node.id)
            entry = await batch.wait()
            return openai_node, entry

        removed, entry = _run(scenario())

        assert orch.get_node(removed.id) is None
        assert [n.provider for n in orch.nodes] == [Provider.GEMINI]
        assert entry.providers == (Provider.OPENAI, Provider.GEMINI)
        assert [n.provider for n in entry.responses] == [Provider.GEMINI]

    def test_history_snapshot_is_independent(self, orchestrator):
        entry = _run(orchestrator.fan_out("hi", ["openai"]))
        node = orchestrator.nodes[0]

        orchestrator.remove_node(node.id)

        assert entry.responses[0].id == node.id
        assert entry.responses[0].output == "openai says: hi"

    def test_drain_waits_for_everything(self, make_call, memory_store):
        call = make_call(delays={Provider.QWEN: 0.02})
        orch = Orchestrator(provider_call=call, credentials=memory_store)

        async def scenario():
            orch.start_fan_out("a", ["qwen"])
            orch.start_fan_out("b", ["qwen", "openai"])
            await orch.drain()

        _run(scenario())

        assert orch.active_batches == []
        assert all(n.status.is_terminal for n in orch.nodes)
        assert len(orch.history) == 2


class TestEvents:
    def test_fan_out_event_sequence(self, orchestrator):
        kinds = []
        orchestrator.bus.subscribe(lambda e: kinds.append(e.kind))

        _run(orchestrator.fan_out("hi", ["openai", "gemini"]))

        assert kinds[:2] == [events.NODE_ADDED, events.NODE_ADDED]
        assert sorted(kinds[2:4]) == [events.NODE_UPDATED, events.NODE_UPDATED]
        assert kinds[4:] == [events.HISTORY_RECORDED]

    def test_filtered_subscription_and_unsubscribe(self, orchestrator):
        recorded = []
        unsubscribe = orchestrator.bus.subscribe(recorded.append, events.HISTORY_RECORDED)

        _run(orchestrator.fan_out("one", ["openai"]))
        unsubscribe()
        _run(orchestrator.fan_out("two", ["openai"]))

        assert [e.payload["entry"].prompt for e in recorded] == ["one"]

    def test_failing_listener_does_not_block_state(self, orchestrator):
        def broken(event):
            raise RuntimeError("render failed")

        orchestrator.bus.subscribe(broken)

        _run(orchestrator.fan_out("hi", ["openai"]))

        assert orchestrator.nodes[0].status is NodeStatus.SUCCEEDED
        assert len(orchestrator.history) == 1


class TestNodesAndLinks:
    @pytest.fixture
    def three_nodes(self, orchestrator):
        _run(orchestrator.fan_out("hi", ["openai", "gemini", "qwen"]))
        return orchestrator.nodes

    def test_remove_node_cascades_links(self, orchestrator, three_nodes):
        a, b, c = three_nodes
        orchestrator.create_link(a.id, b.id, CorrectionKind.CODE_REVIEW)
        orchestrator.create_link(b.id, c.id, CorrectionKind.FACT_CHECK)
        kept = orchestrator.create_link(a.id, c.id, CorrectionKind.OPTIMIZATION)

        assert orchestrator.remove_node(b.id) is True

        assert orchestrator.links == (kept,)
        assert orchestrator.remove_node(b.id) is False

    def test_clear_nodes_drops_all_links(self, orchestrator, three_nodes):
        a, b, _ = three_nodes
        orchestrator.create_link(a.id, b.id)

        assert orchestrator.clear_nodes() == 3

        assert orchestrator.nodes == ()
        assert orchestrator.links == ()
        assert len(orchestrator.history) == 1

    def test_link_lifecycle(self, orchestrator, three_nodes):
        a, b, _ = three_nodes
        link = orchestrator.create_link(a.id, b.id, "code-review")

        orchestrator.update_link(link.id, status=LinkStatus.COMPLETED, feedback="LGTM")

        assert link.status is LinkStatus.COMPLETED
        assert link.feedback == "LGTM"
        assert (link.source_node_id, link.target_node_id) == (a.id, b.id)
        assert orchestrator.remove_link(link.id) is True
        assert orchestrator.links == ()

    def test_link_rejections(self, orchestrator, three_nodes):
        a = three_nodes[0]
        with pytest.raises(ValidationError, match="different"):
            orchestrator.create_link(a.id, a.id)
        with pytest.raises(ValidationError, match="Unknown node"):
            orchestrator.create_link(a.id, "missing")
        assert orchestrator.links == ()

    def test_find_node_by_prefix(self, orchestrator, three_nodes):
        node = three_nodes[1]
        assert orchestrator.find_node(node.id[:12]) is node
        assert orchestrator.find_node("") is None


class TestHistoryAccess:
    def test_search_tag_and_delete(self, orchestrator):
        async def scenario():
            await orchestrator.fan_out("Sort numbers", ["openai"], tags=["code"])
            await orchestrator.fan_out("Weather today", ["gemini"])

        _run(scenario())

        assert [e.prompt for e in orchestrator.search_history("", tag="code")] == ["Sort numbers"]
        weather = orchestrator.search_history("weather")[0]

        orchestrator.tag_history_entry(weather.id, ["daily"])
        assert orchestrator.history_tags() == ["daily", "code"]

        assert orchestrator.remove_history_entry(weather.id) is True
        assert orchestrator.get_history_entry(weather.id) is None
        assert len(orchestrator.history) == 1


class TestCredentials:
    def test_save_and_list(self, orchestrator):
        orchestrator.save_credential("openai", " sk-test ")
        orchestrator.save_credential(Provider.QWEN, "q-key")

        assert orchestrator.configured_providers() == [Provider.OPENAI, Provider.QWEN]
        assert orchestrator.credentials.get(Provider.OPENAI) == "sk-test"

        orchestrator.delete_credential("openai")
        assert orchestrator.configured_providers() == [Provider.QWEN]

    def test_blank_key_rejected(self, orchestrator):
        with pytest.raises(ValidationError, match="cannot be empty"):
            orchestrator.save_credential("openai", "   ")
        assert orchestrator.configured_providers() == []

    def test_validate_without_stored_key(self, orchestrator):
        outcome = _run(orchestrator.validate_credential("gemini"))

        assert outcome.ok is False
        assert outcome.reason == "empty credential"

    def test_credential_events(self, orchestrator):
        seen = []
        orchestrator.bus.subscribe(seen.append, events.CREDENTIAL_SAVED, events.CREDENTIAL_DELETED)

        orchestrator.save_credential("gemini", "g-key")
        orchestrator.delete_credential("gemini")

        assert [(e.kind, e.payload["provider"]) for e in seen] == [
            (events.CREDENTIAL_SAVED, Provider.GEMINI),
            (events.CREDENTIAL_DELETED, Provider.GEMINI),
        ]
        assert orchestrator.get_credential("gemini") is None

    def test_clean_secret(self):
        assert Orchestrator.clean_secret("  sk-test\n") == "sk-test"
        with pytest.raises(ValidationError):
            Orchestrator.clean_secret(None)


class TestBatchHandle:
    def test_wait_on_unstarted_batch(self):
        batch = FanOutBatch(id="b1", prompt="hi", providers=(Provider.OPENAI,), nodes=[])

        with pytest.raises(RuntimeError, match="never started"):
            _run(batch.wait())

    def test_late_result_for_settled_node_is_logged(self, orchestrator, caplog):
        _run(orchestrator.fan_out("hi", ["openai"]))
        node = orchestrator.nodes[0]

        with caplog.at_level(logging.DEBUG, logger="agentic_os.orchestrator"):
            orchestrator._apply_outcome(node.id, DispatchOutcome.failed("late"))

        assert node.status is NodeStatus.SUCCEEDED
        assert "removed or already settled" in caplog.text
