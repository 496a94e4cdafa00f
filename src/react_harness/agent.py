# agent.py
# Execution controller. Owns the step loop, the run state machine and
# both entry points (blocking run() and streaming run_stream()).
#
# The controller knows nothing about models or tools. It calls step()
# until the run leaves RUNNING or the budget is spent, and turns every
# failure into state + text. Nothing raised by a step escapes.
#
# State machine (per RunContext):
#   IDLE → RUNNING → FINISHED   terminal signal, budget spent, artifact
#                  → ERROR      step raised, stream timed out

import queue
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Iterator

from react_harness import display
from react_harness.config import DEFAULT_MAX_STEPS, DEFAULT_STREAM_TIMEOUT
from react_harness.errors import InvalidArgumentError, InvalidStateError
from react_harness.models import (
    AgentState,
    Budget,
    Message,
    RunContext,
    StepRecord,
    StreamEvent,
    StreamEventType,
)
from react_harness.tools import extract_artifact_path

_END = object()


# ---------------------------------------------------------------------------
# Event source
# ---------------------------------------------------------------------------


class StepStream:
    """
    One-directional, closeable source of StreamEvents.

    The producer (the run's worker thread) calls send() / complete() /
    complete_with_error(). The consumer iterates the stream and may call
    close() at any point; close() waits for the in-flight step to finish,
    but never past the stream's timeout.

    The timeout stays armed until the worker completes, so a step that
    hangs after close() still ends the run through the timeout path.

    Example:
        with agent.run_stream("plan a one-day trip") as stream:
            for event in stream:
                print(event.content)
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout
        self._deadline: float | None = None
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._done = False
        self._settled = False
        self._abandoned = False
        self._exhausted = False
        self._timer: threading.Timer | None = None
        self._thread: threading.Thread | None = None
        self._timeout_callbacks: list[Callable[[], None]] = []
        self._completion_callbacks: list[Callable[[], None]] = []
        self.timed_out = False
        self.error: BaseException | None = None

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def on_timeout(self, callback: Callable[[], None]) -> None:
        self._timeout_callbacks.append(callback)

    def on_completion(self, callback: Callable[[], None]) -> None:
        self._completion_callbacks.append(callback)

    def start(self, target: Callable[[], None], name: str = "step-stream") -> None:
        """Run ``target`` on a worker thread and arm the timeout."""
        self._thread = threading.Thread(target=target, name=name, daemon=True)
        if self._timeout is not None:
            self._deadline = time.monotonic() + self._timeout
            self._timer = threading.Timer(self._timeout, self._expire)
            self._timer.daemon = True
            self._timer.start()
        self._thread.start()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def send(self, event: StreamEvent) -> bool:
        """Queue an event. Returns False once the stream is closed."""
        with self._lock:
            if self._done:
                return False
            self._queue.put(event)
            return True

    def complete(self) -> None:
        self._settle()
        self._finish()

    def complete_with_error(self, error: BaseException) -> None:
        self._settle()
        self._finish(error=error)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[StreamEvent]:
        return self

    def __next__(self) -> StreamEvent:
        if self._exhausted:
            raise StopIteration
        item = self._queue.get()
        if item is _END or self._abandoned:
            self._exhausted = True
            raise StopIteration
        return item

    def close(self, timeout: float | None = None) -> None:
        """
        Cancel from the consumer side and wait for the in-flight step.

        Without an explicit ``timeout`` the wait is bounded by what is left
        of the stream's own timeout; if the step outlives it, close()
        returns once the timeout handling has run.
        """
        with self._lock:
            self._abandoned = True
        self._finish()

        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        if timeout is None and self._deadline is not None:
            timeout = max(0.0, self._deadline - time.monotonic())
        thread.join(timeout)
        if thread.is_alive() and self._timer is not None:
            self._timer.join()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the worker thread to exit."""
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def closed(self) -> bool:
        return self._done

    def __enter__(self) -> "StepStream":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _settle(self) -> None:
        """The worker is done: disarm the timeout."""
        with self._lock:
            self._settled = True
        if self._timer is not None:
            self._timer.cancel()

    def _expire(self) -> None:
        with self._lock:
            if self._settled:
                return
            first_finish = not self._done
            self._done = True
            self._abandoned = True
            self.timed_out = True

        for callback in self._timeout_callbacks:
            callback()
        if first_finish:
            self._queue.put(_END)

    def _finish(self, *, error: BaseException | None = None) -> None:
        with self._lock:
            if self._done:
                return
            self._done = True
            self.error = error

        for callback in self._completion_callbacks:
            callback()
        self._queue.put(_END)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class BaseAgent(ABC):
    """
    Step-loop driver. Subclasses implement step(); cleanup() is an
    optional hook run exactly once when a run ends, on every exit path.

    Each run gets a fresh RunContext. An agent whose last run ended in
    FINISHED or ERROR must be reset() before it can run again.
    """

    def __init__(
        self,
        name: str,
        system_prompt: str = "",
        next_step_prompt: str | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        stream_timeout: float = DEFAULT_STREAM_TIMEOUT,
    ) -> None:
        if max_steps <= 0:
            raise ValueError(f"max_steps must be a positive integer, got {max_steps}.")
        self._name = name
        self._system_prompt = system_prompt
        self._next_step_prompt = next_step_prompt
        self._max_steps = max_steps
        self._stream_timeout = stream_timeout
        self._context = self._new_context()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def next_step_prompt(self) -> str | None:
        return self._next_step_prompt

    @property
    def max_steps(self) -> int:
        return self._max_steps

    @property
    def state(self) -> AgentState:
        return self._context.state

    @property
    def current_step(self) -> int:
        return self._context.budget.current_step

    @property
    def messages(self) -> list[Message]:
        return list(self._context.messages)

    @property
    def records(self) -> list[StepRecord]:
        return list(self._context.records)

    def reset(self) -> None:
        """Discard the last run so the agent is IDLE again."""
        if self.state is AgentState.RUNNING:
            raise InvalidStateError("Cannot reset an agent while it is running.")
        self._context = self._new_context()

    # ------------------------------------------------------------------
    # Extension points
    # ------------------------------------------------------------------

    @abstractmethod
    def step(self, context: RunContext) -> str:
        """
        Perform one step and return its human-readable result.

        Raise only for failures that should end the run in ERROR;
        recoverable problems must come back as text so the step still
        counts against the budget.
        """

    def cleanup(self) -> None:
        """Release per-run resources. Subclasses may override."""

    # ------------------------------------------------------------------
    # Blocking entry point
    # ------------------------------------------------------------------

    def run(self, user_prompt: str) -> str:
        """
        Run to completion and return the newline-joined step records.

        If a step reports a generated artifact, the run stops there and
        the artifact path is returned instead. Failures during a step end
        the run in ERROR and come back as an error string.

        Raises InvalidStateError / InvalidArgumentError before anything
        is mutated if the agent is not IDLE or the prompt is blank.
        """
        context = self._start(user_prompt)
        display.prompt_received(self._name, user_prompt)

        results: list[str] = []
        try:
            for record in self._steps(context):
                results.append(str(record))

                artifact_path = extract_artifact_path(record.result)
                if artifact_path is not None:
                    context.transition(AgentState.FINISHED)
                    display.artifact_detected(record.step, artifact_path)
                    return artifact_path

            exhausted = self._finish_budget(context)
            if exhausted:
                results.append(exhausted)

            output = "\n".join(results)
            display.final_result(output)
            return output
        except Exception as exc:
            context.transition(AgentState.ERROR)
            display.run_error(self._name, exc)
            return f"Execution error: {exc}"
        finally:
            self._run_cleanup(context)

    # ------------------------------------------------------------------
    # Streaming entry point
    # ------------------------------------------------------------------

    def run_stream(self, user_prompt: str, timeout: float | None = None) -> StepStream:
        """
        Start a run on a worker thread and return its event stream at once.

        One STEP event per completed step, then a COMPLETE or ERROR event.
        Precondition failures arrive as a single ERROR event. On timeout
        the run ends in ERROR and the stream closes without further events.
        """
        stream = StepStream(timeout if timeout is not None else self._stream_timeout)

        try:
            context = self._start(user_prompt)
        except (InvalidStateError, InvalidArgumentError) as exc:
            display.stream_rejected(self._name, exc)
            stream.send(StreamEvent(type=StreamEventType.ERROR, content=f"Error: {exc}"))
            stream.complete()
            return stream

        display.prompt_received(self._name, user_prompt)
        stream.on_timeout(lambda: self._stream_timed_out(context))
        stream.on_completion(lambda: self._stream_completed(context))
        stream.start(lambda: self._stream_steps(context, stream), name=f"{self._name}-run")
        return stream

    def _stream_steps(self, context: RunContext, stream: StepStream) -> None:
        try:
            outcome: StreamEvent | None = None
            try:
                for record in self._steps(context):
                    stream.send(StreamEvent(type=StreamEventType.STEP, content=str(record)))

                if context.cancelled:
                    # Closed by the consumer; no-op after a timeout.
                    context.transition(AgentState.FINISHED)
                else:
                    exhausted = self._finish_budget(context)
                    outcome = StreamEvent(
                        type=StreamEventType.COMPLETE,
                        content=exhausted or "Execution finished",
                    )
            except Exception as exc:
                context.transition(AgentState.ERROR)
                display.run_error(self._name, exc)
                outcome = StreamEvent(type=StreamEventType.ERROR, content=f"Execution error: {exc}")
            finally:
                self._run_cleanup(context)

            if outcome is not None:
                stream.send(outcome)
            stream.complete()
        except Exception as exc:
            stream.complete_with_error(exc)

    def _stream_timed_out(self, context: RunContext) -> None:
        context.cancel()
        context.transition(AgentState.ERROR)
        display.stream_timeout(self._name)
        self._run_cleanup(context)

    def _stream_completed(self, context: RunContext) -> None:
        # Closed from either side: stop after the in-flight step. The worker
        # settles the final state once that step returns or raises.
        context.cancel()
        display.stream_closed(self._name)

    # ------------------------------------------------------------------
    # Loop internals
    # ------------------------------------------------------------------

    def _new_context(self) -> RunContext:
        return RunContext(budget=Budget(max_steps=self._max_steps))

    def _start(self, user_prompt: str) -> RunContext:
        if self.state is not AgentState.IDLE:
            raise InvalidStateError(f"Cannot run agent from state: {self.state.value}")
        if not user_prompt or not user_prompt.strip():
            raise InvalidArgumentError("Cannot run agent with empty user prompt")

        context = self._new_context()
        context.transition(AgentState.RUNNING)
        context.messages.append(Message.user(user_prompt))
        self._context = context
        return context

    def _steps(self, context: RunContext) -> Iterator[StepRecord]:
        """Yield one StepRecord per completed step, in order."""
        while context.should_continue:
            number = context.begin_step()
            display.step_start(number, context.budget.max_steps)

            record = StepRecord(step=number, result=self.step(context))
            context.records.append(record)
            display.step_result(record.step, record.result)
            yield record

    def _finish_budget(self, context: RunContext) -> str | None:
        """Force FINISHED when the budget ran out without a terminal signal."""
        if not context.budget.exhausted:
            return None
        if not context.transition(AgentState.FINISHED):
            return None
        display.max_steps_reached(context.budget.max_steps)
        return f"Terminated: Reached max steps ({context.budget.max_steps})"

    def _run_cleanup(self, context: RunContext) -> None:
        if not context.claim_cleanup():
            return
        try:
            self.cleanup()
        except Exception as exc:
            display.cleanup_failed(self._name, exc)
