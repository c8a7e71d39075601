"""Tests for the concurrent dispatch engine."""

import asyncio

from agentic_os.dispatch import TIMEOUT_REASON, DispatchCall, DispatchEngine
from agentic_os.errors import ProviderError
from agentic_os.models import NodeStatus, Provider


def _collect(engine, calls):
    results = []

    async def run():
        tasks = engine.dispatch(calls, lambda node_id, outcome: results.append((node_id, outcome)))
        await asyncio.gather(*tasks)

    asyncio.run(run())
    return results


class TestDispatchEngine:
    def test_results_arrive_in_completion_order(self, make_call):
        call = make_call(delays={Provider.OPENAI: 0.05, Provider.GEMINI: 0.0, Provider.QWEN: 0.02})
        calls = [
            DispatchCall("n-openai", Provider.OPENAI, "hi"),
            DispatchCall("n-gemini", Provider.GEMINI, "hi"),
            DispatchCall("n-qwen", Provider.QWEN, "hi"),
        ]

        results = _collect(DispatchEngine(call), calls)

        assert [node_id for node_id, _ in results] == ["n-gemini", "n-qwen", "n-openai"]
        assert all(outcome.ok for _, outcome in results)

    def test_failure_is_isolated(self, make_call):
        call = make_call(
            replies={Provider.OPENAI: ProviderError("Incorrect API key provided", "openai")},
            delays={Provider.GEMINI: 0.02},
        )
        calls = [DispatchCall("a", Provider.OPENAI, "hi"), DispatchCall("b", Provider.GEMINI, "hi")]

        outcomes = dict(_collect(DispatchEngine(call), calls))

        assert outcomes["a"].status is NodeStatus.FAILED
        assert outcomes["a"].reason == "Incorrect API key provided"
        assert outcomes["b"].ok
        assert outcomes["b"].text == "gemini says: hi"

    def test_unexpected_exception_becomes_failure(self, make_call):
        call = make_call(replies={Provider.QWEN: RuntimeError("socket closed")})

        ((_, outcome),) = _collect(DispatchEngine(call), [DispatchCall("q", Provider.QWEN, "hi")])

        assert not outcome.ok
        assert outcome.reason == "Failed to get response from qwen: socket closed"

    def test_empty_text_is_a_failure(self, make_call):
        call = make_call(replies={Provider.DEEPSEEK: ""})

        ((_, outcome),) = _collect(DispatchEngine(call), [DispatchCall("d", Provider.DEEPSEEK, "hi")])

        assert outcome.reason == "Empty response from deepseek"

    def test_timeout_marks_only_slow_call(self, make_call):
        call = make_call(delays={Provider.OPENAI: 5.0})
        calls = [DispatchCall("slow", Provider.OPENAI, "hi"), DispatchCall("fast", Provider.GEMINI, "hi")]

        outcomes = dict(_collect(DispatchEngine(call, timeout=0.05), calls))

        assert outcomes["slow"].reason == TIMEOUT_REASON
        assert outcomes["fast"].ok
        assert Provider.OPENAI not in call.completed

    def test_callback_error_does_not_break_siblings(self, make_call):
        call = make_call()
        seen = []

        def on_result(node_id, outcome):
            seen.append(node_id)
            if node_id == "a":
                raise RuntimeError("renderer crashed")

        async def run():
            tasks = DispatchEngine(call).dispatch(
                [DispatchCall("a", Provider.OPENAI, "x"), DispatchCall("b", Provider.GEMINI, "x")],
                on_result,
            )
            return await asyncio.gather(*tasks)

        outcomes = asyncio.run(run())

        assert sorted(seen) == ["a", "b"]
        assert all(o.ok for o in outcomes)
