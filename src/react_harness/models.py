# models.py
# Data contracts for the ReAct execution harness.
# Schema and state transitions only; no model or tool calls live here.

import threading
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field, PrivateAttr


class AgentState(str, Enum):
    """Lifecycle of one agent run."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"


TERMINAL_STATES = frozenset({AgentState.FINISHED, AgentState.ERROR})


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str = Field(..., description="Call identifier, echoed back in the tool response.")
    name: str = Field(..., description="Tool name; must exist in the catalog.")
    arguments: str = Field(default="{}", description="JSON-serialized tool arguments.")


class ToolResponse(BaseModel):
    """Outcome of a single resolved ToolCall."""

    id: str
    name: str
    data: str = Field(default="", description="Text returned by the tool.")


class Message(BaseModel):
    """One entry of the conversation history."""

    role: Literal["user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    responses: list[ToolResponse] = Field(default_factory=list)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: list[ToolCall] | None = None) -> "Message":
        return cls(role="assistant", content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, responses: list[ToolResponse]) -> "Message":
        return cls(role="tool", responses=responses)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


def latest_user_message(history: list[Message]) -> Message | None:
    """Return the most recent user message, or None if the history has none."""
    for message in reversed(history):
        if message.role == "user":
            return message
    return None


def latest_tool_message(history: list[Message]) -> Message | None:
    for message in reversed(history):
        if message.role == "tool":
            return message
    return None


# ---------------------------------------------------------------------------
# Think results
# ---------------------------------------------------------------------------


class Invoke(BaseModel):
    """Think decided to run the model's requested tool calls."""

    kind: Literal["invoke"] = "invoke"
    message: Message = Field(..., description="Assistant message carrying the calls.")

    @property
    def calls(self) -> list[ToolCall]:
        return self.message.tool_calls


class Terminate(BaseModel):
    """Think decided the run is over (explicitly or via the no-tool-call fallback)."""

    kind: Literal["terminate"] = "terminate"
    text: str = Field(default="", description="Closing text the model produced, if any.")


Action = Union[Invoke, Terminate]


# ---------------------------------------------------------------------------
# Run bookkeeping
# ---------------------------------------------------------------------------


class StepRecord(BaseModel):
    """Immutable log entry produced after each completed step."""

    step: int = Field(..., ge=1, description="1-based step number.")
    result: str = Field(default="", description="Human-readable step summary.")

    def __str__(self) -> str:
        return f"Step {self.step}: {self.result}"


class Budget(BaseModel):
    max_steps: int = Field(default=10, gt=0)
    current_step: int = Field(default=0, ge=0)

    @property
    def exhausted(self) -> bool:
        return self.current_step >= self.max_steps


class RunContext(BaseModel):
    """
    Everything one run owns: state, budget, conversation and step records.

    Created fresh for every run and only touched by that run's task, plus
    the stream handle's timeout/close path. FINISHED and ERROR are sticky:
    once reached, later transitions are ignored.
    """

    state: AgentState = AgentState.IDLE
    budget: Budget = Field(default_factory=Budget)
    messages: list[Message] = Field(default_factory=list)
    records: list[StepRecord] = Field(default_factory=list)
    next_step_injected: bool = False

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)
    _cancelled: threading.Event = PrivateAttr(default_factory=threading.Event)
    _cleaned_up: bool = PrivateAttr(default=False)

    def transition(self, state: AgentState) -> bool:
        """Move to ``state`` unless the run already ended. Returns True on change."""
        with self._lock:
            if self.state in TERMINAL_STATES:
                return False
            self.state = state
            return True

    def begin_step(self) -> int:
        self.budget.current_step += 1
        return self.budget.current_step

    @property
    def should_continue(self) -> bool:
        return (
            self.state is AgentState.RUNNING
            and not self.budget.exhausted
            and not self.cancelled
        )

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def claim_cleanup(self) -> bool:
        """True exactly once per context; the caller then runs the cleanup hook."""
        with self._lock:
            if self._cleaned_up:
                return False
            self._cleaned_up = True
            return True


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class StreamEventType(str, Enum):
    STEP = "step"
    COMPLETE = "complete"
    ERROR = "error"


class StreamEvent(BaseModel):
    """One chunk delivered through a StepStream."""

    type: StreamEventType
    content: str = ""
