import threading

import pytest

from react_harness.agent import BaseAgent, StepStream
from react_harness.errors import InvalidArgumentError, InvalidStateError
from react_harness.models import AgentState, RunContext, StreamEvent, StreamEventType
from react_harness.tools import artifact_marker


class ScriptedAgent(BaseAgent):
    """
    Returns scripted results per step. A result that is an exception is
    raised; the string "FINISH" ends the run like a termination tool would.
    """

    def __init__(self, results, max_steps=5, **kwargs):
        super().__init__(name="scripted", max_steps=max_steps, **kwargs)
        self._results = list(results)
        self.cleanup_calls = 0
        self.step_calls = 0

    def step(self, context: RunContext) -> str:
        self.step_calls += 1
        result = self._results[min(self.step_calls, len(self._results)) - 1]
        if isinstance(result, Exception):
            raise result
        if result == "FINISH":
            context.transition(AgentState.FINISHED)
        return result

    def cleanup(self) -> None:
        self.cleanup_calls += 1


class BlockingAgent(ScriptedAgent):
    """First step blocks until ``release`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = threading.Event()
        self.release = threading.Event()

    def step(self, context: RunContext) -> str:
        if self.step_calls == 0:
            self.started.set()
            self.release.wait(5)
        return super().step(context)


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------

def test_new_agent_is_idle():
    agent = ScriptedAgent(["ok"])
    assert agent.state is AgentState.IDLE
    assert agent.current_step == 0
    assert agent.messages == []
    assert agent.max_steps == 5
    assert agent.name == "scripted"

def test_max_steps_must_be_positive():
    with pytest.raises(ValueError, match="positive"):
        ScriptedAgent(["ok"], max_steps=0)

@pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
def test_run_rejects_blank_prompt(prompt):
    agent = ScriptedAgent(["ok"])
    with pytest.raises(InvalidArgumentError, match="empty user prompt"):
        agent.run(prompt)
    assert agent.state is AgentState.IDLE
    assert agent.messages == []
    assert agent.step_calls == 0
    assert agent.cleanup_calls == 0

def test_run_rejects_non_idle_agent():
    agent = ScriptedAgent(["FINISH"])
    agent.run("first")
    assert agent.state is AgentState.FINISHED

    with pytest.raises(InvalidStateError, match="FINISHED"):
        agent.run("second")
    # The failed attempt must not touch the previous run.
    assert agent.current_step == 1
    assert agent.cleanup_calls == 1

def test_reset_returns_agent_to_idle():
    agent = ScriptedAgent(["FINISH"])
    agent.run("first")
    agent.reset()
    assert agent.state is AgentState.IDLE
    assert agent.current_step == 0

    assert agent.run("second") == "Step 1: FINISH"


# ---------------------------------------------------------------------------
# Blocking run
# ---------------------------------------------------------------------------

def test_run_records_user_prompt_first():
    agent = ScriptedAgent(["FINISH"])
    agent.run("plan a one-day trip")
    assert agent.messages[0].role == "user"
    assert agent.messages[0].content == "plan a one-day trip"

def test_run_stops_on_terminal_signal():
    agent = ScriptedAgent(["searched", "FINISH", "never"], max_steps=3)
    result = agent.run("go")

    assert result == "Step 1: searched\nStep 2: FINISH"
    assert agent.state is AgentState.FINISHED
    assert agent.step_calls == 2
    assert [r.step for r in agent.records] == [1, 2]

def test_run_exhausts_budget():
    agent = ScriptedAgent(["working"], max_steps=4)
    result = agent.run("go")

    lines = result.split("\n")
    assert lines[:4] == [f"Step {n}: working" for n in range(1, 5)]
    assert lines[-1] == "Terminated: Reached max steps (4)"
    assert agent.step_calls == 4
    assert agent.current_step == 4
    assert agent.state is AgentState.FINISHED

def test_run_finishing_on_last_step_has_no_max_steps_marker():
    agent = ScriptedAgent(["working", "FINISH"], max_steps=2)
    result = agent.run("go")
    assert "Reached max steps" not in result
    assert agent.state is AgentState.FINISHED

def test_run_contains_step_failure():
    agent = ScriptedAgent(["ok", RuntimeError("tool backend down")])
    result = agent.run("go")

    assert result == "Execution error: tool backend down"
    assert agent.state is AgentState.ERROR
    assert agent.step_calls == 2

def test_run_never_leaves_agent_running():
    for script in (["FINISH"], ["loop"], [ValueError("x")], [artifact_marker("/tmp/a.txt")]):
        agent = ScriptedAgent(script, max_steps=2)
        agent.run("go")
        assert agent.state is not AgentState.RUNNING


# ---------------------------------------------------------------------------
# Artifact shortcut
# ---------------------------------------------------------------------------

def test_artifact_marker_short_circuits_run():
    agent = ScriptedAgent(["research", artifact_marker("/tmp/plan.txt"), "never"], max_steps=5)
    result = agent.run("go")

    assert result == "/tmp/plan.txt"
    assert agent.step_calls == 2
    assert agent.state is AgentState.FINISHED
    assert agent.cleanup_calls == 1

def test_first_artifact_wins():
    agent = ScriptedAgent([artifact_marker("/tmp/first.txt"), artifact_marker("/tmp/second.txt")])
    assert agent.run("go") == "/tmp/first.txt"
    assert agent.step_calls == 1


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "script",
    [
        ["FINISH"],
        ["loop"],
        [RuntimeError("boom")],
        [artifact_marker("/tmp/x.txt")],
    ],
    ids=["success", "budget", "error", "artifact"],
)
def test_cleanup_runs_exactly_once(script):
    agent = ScriptedAgent(script, max_steps=3)
    agent.run("go")
    assert agent.cleanup_calls == 1

def test_cleanup_failure_does_not_escape_run():
    class FragileAgent(ScriptedAgent):
        def cleanup(self) -> None:
            super().cleanup()
            raise OSError("disk gone")

    agent = FragileAgent(["FINISH"])
    assert agent.run("go") == "Step 1: FINISH"
    assert agent.cleanup_calls == 1


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

def test_stream_rejects_non_idle_agent_with_single_error_event():
    agent = ScriptedAgent(["FINISH"])
    agent.run("first")
    steps_before = agent.step_calls

    events = list(agent.run_stream("second"))

    assert len(events) == 1
    assert events[0].type is StreamEventType.ERROR
    assert "FINISHED" in events[0].content
    assert agent.step_calls == steps_before
    assert agent.state is AgentState.FINISHED

def test_stream_rejects_blank_prompt():
    agent = ScriptedAgent(["FINISH"])
    events = list(agent.run_stream("  "))

    assert [e.type for e in events] == [StreamEventType.ERROR]
    assert "empty user prompt" in events[0].content
    assert agent.state is AgentState.IDLE

def test_stream_emits_one_event_per_step_then_completes():
    agent = ScriptedAgent(["searched", "FINISH"], max_steps=5)
    stream = agent.run_stream("go", timeout=5)
    events = list(stream)
    stream.join(5)

    assert [e.type for e in events] == [
        StreamEventType.STEP,
        StreamEventType.STEP,
        StreamEventType.COMPLETE,
    ]
    assert events[0].content == "Step 1: searched"
    assert events[1].content == "Step 2: FINISH"
    assert events[2].content == "Execution finished"
    assert agent.state is AgentState.FINISHED
    assert agent.cleanup_calls == 1
    assert not stream.timed_out
    assert stream.error is None

def test_stream_reports_budget_exhaustion():
    agent = ScriptedAgent(["loop"], max_steps=2)
    stream = agent.run_stream("go", timeout=5)
    events = list(stream)
    stream.join(5)

    assert [e.content for e in events] == [
        "Step 1: loop",
        "Step 2: loop",
        "Terminated: Reached max steps (2)",
    ]
    assert events[-1].type is StreamEventType.COMPLETE
    assert agent.state is AgentState.FINISHED

def test_stream_step_failure_emits_error_then_closes():
    agent = ScriptedAgent(["ok", RuntimeError("boom")])
    stream = agent.run_stream("go", timeout=5)
    events = list(stream)
    stream.join(5)

    assert [e.type for e in events] == [StreamEventType.STEP, StreamEventType.ERROR]
    assert events[-1].content == "Execution error: boom"
    assert agent.state is AgentState.ERROR
    assert agent.cleanup_calls == 1

def test_stream_timeout_forces_error_and_cleans_up_once():
    agent = BlockingAgent(["FINISH"])
    stream = agent.run_stream("go", timeout=0.1)

    events = list(stream)

    assert events == []
    assert stream.timed_out
    assert agent.state is AgentState.ERROR
    assert agent.cleanup_calls == 1

    # The in-flight step finishes later; nothing changes.
    agent.release.set()
    stream.join(5)
    assert agent.state is AgentState.ERROR
    assert agent.cleanup_calls == 1
    assert list(stream) == []

def test_stream_close_lets_in_flight_step_finish():
    agent = BlockingAgent(["loop"], max_steps=5)
    stream = agent.run_stream("go", timeout=5)
    assert agent.started.wait(5)

    threading.Timer(0.05, agent.release.set).start()
    stream.close()

    assert agent.step_calls == 1
    assert agent.current_step == 1
    assert agent.cleanup_calls == 1
    assert agent.state is AgentState.FINISHED
    assert stream.closed
    assert list(stream) == []

def test_stream_close_then_failing_step_ends_in_error():
    agent = BlockingAgent([RuntimeError("tool backend down")], max_steps=5)
    stream = agent.run_stream("go", timeout=5)
    assert agent.started.wait(5)

    threading.Timer(0.05, agent.release.set).start()
    stream.close()

    assert agent.step_calls == 1
    assert agent.state is AgentState.ERROR
    assert agent.cleanup_calls == 1
    assert not stream.timed_out
    assert list(stream) == []

def test_stream_close_is_bounded_by_timeout_when_step_hangs():
    agent = BlockingAgent(["FINISH"], max_steps=5)
    stream = agent.run_stream("go", timeout=0.2)
    assert agent.started.wait(5)

    closer = threading.Thread(target=stream.close)
    closer.start()
    closer.join(2)

    assert not closer.is_alive()
    assert stream.timed_out
    assert agent.state is AgentState.ERROR
    assert agent.cleanup_calls == 1

    # The hung step returns later; the run stays in ERROR.
    agent.release.set()
    stream.join(5)
    assert agent.state is AgentState.ERROR
    assert agent.cleanup_calls == 1

def test_stream_is_a_context_manager():
    agent = ScriptedAgent(["FINISH"])
    with agent.run_stream("go", timeout=5) as stream:
        first = next(stream)
    assert first.content == "Step 1: FINISH"
    assert stream.closed
    assert agent.cleanup_calls == 1

def test_stream_returns_before_steps_run():
    agent = BlockingAgent(["FINISH"])
    stream = agent.run_stream("go", timeout=5)

    # Handle is back while the first step is still blocked.
    assert agent.started.wait(5)
    assert agent.state is AgentState.RUNNING
    assert agent.step_calls == 0

    agent.release.set()
    assert [e.type for e in stream] == [StreamEventType.STEP, StreamEventType.COMPLETE]


# ---------------------------------------------------------------------------
# StepStream
# ---------------------------------------------------------------------------

def test_step_stream_drops_events_after_completion():
    stream = StepStream()
    assert stream.send(StreamEvent(type=StreamEventType.STEP, content="a"))
    stream.complete()
    assert not stream.send(StreamEvent(type=StreamEventType.STEP, content="b"))

    assert [e.content for e in stream] == ["a"]

def test_step_stream_completion_callbacks_fire_once():
    stream = StepStream()
    calls = []
    stream.on_completion(lambda: calls.append("done"))

    stream.complete()
    stream.complete()
    stream.close()

    assert calls == ["done"]

def test_step_stream_close_keeps_timeout_armed():
    stream = StepStream(timeout=0.1)
    fired = threading.Event()
    stream.on_timeout(fired.set)
    worker_release = threading.Event()
    stream.start(lambda: worker_release.wait(5))

    stream.close()

    assert fired.is_set()
    assert stream.timed_out
    worker_release.set()
    stream.join(5)

def test_step_stream_worker_completion_disarms_timeout():
    stream = StepStream(timeout=0.1)
    fired = threading.Event()
    stream.on_timeout(fired.set)
    stream.start(stream.complete)

    stream.join(5)
    assert not fired.wait(0.3)
    assert not stream.timed_out

def test_step_stream_complete_with_error_keeps_error():
    stream = StepStream()
    error = RuntimeError("channel broke")
    stream.complete_with_error(error)

    assert list(stream) == []
    assert stream.error is error
