# react.py
# Think/act cycle. One step is one think() followed by at most one act().
#
#   think()  asks the model backend for the next action. Tool calls become
#            Invoke; a reply with no tool calls becomes Terminate, because
#            models often close with prose instead of calling doTerminate.
#   act()    resolves Invoke through the ToolExecutor, or Terminate
#            locally, and flips the run to FINISHED once doTerminate ran.

from abc import abstractmethod

from react_harness import display
from react_harness.agent import BaseAgent
from react_harness.backends import ModelBackend, ToolExecutor
from react_harness.config import DEFAULT_MAX_STEPS, DEFAULT_STREAM_TIMEOUT
from react_harness.errors import ToolExecutionError
from react_harness.models import (
    Action,
    AgentState,
    Invoke,
    Message,
    RunContext,
    Terminate,
    ToolResponse,
    latest_tool_message,
)
from react_harness.tools import TERMINATE_CALL_ID, TERMINATE_TOOL_NAME, ToolCatalog


def _summarize(responses: list[ToolResponse]) -> str:
    return "\n".join(f"{r.name} completed with result: {r.data}" for r in responses)


class ReActAgent(BaseAgent):
    """A step is think() then, if it chose an action, act()."""

    @abstractmethod
    def think(self, context: RunContext) -> Action | None:
        """Decide the next action; None means there is nothing to act on."""

    @abstractmethod
    def act(self, context: RunContext, action: Action) -> str:
        """Carry out ``action`` and describe the outcome."""

    def step(self, context: RunContext) -> str:
        action = self.think(context)
        if action is None:
            return "Thinking complete - no action needed"
        return self.act(context, action)


class ToolCallAgent(ReActAgent):
    """
    ReAct agent that manages tool execution itself.

    The model backend is always called with tool execution disabled so
    that every call passes through act(), where termination is detected.

    Example:
        agent = ToolCallAgent(
            name="planner",
            model=OpenAIModelBackend(AgentSettings.from_env()),
            tools=default_catalog(),
            system_prompt="You plan trips.",
        )
        print(agent.run("plan a one-day trip"))
    """

    def __init__(
        self,
        name: str,
        model: ModelBackend,
        tools: ToolCatalog | None = None,
        executor: ToolExecutor | None = None,
        system_prompt: str = "",
        next_step_prompt: str | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        stream_timeout: float = DEFAULT_STREAM_TIMEOUT,
    ) -> None:
        super().__init__(
            name=name,
            system_prompt=system_prompt,
            next_step_prompt=next_step_prompt,
            max_steps=max_steps,
            stream_timeout=stream_timeout,
        )
        self._model = model
        self._catalog = tools or ToolCatalog()
        self._executor = executor or ToolExecutor(self._catalog)

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Think
    # ------------------------------------------------------------------

    def think(self, context: RunContext) -> Action | None:
        if self.next_step_prompt and not context.next_step_injected:
            context.messages.append(Message.user(self.next_step_prompt))
            context.next_step_injected = True

        try:
            reply = self._model.complete(
                list(context.messages),
                self.system_prompt,
                self._catalog,
                tool_execution_enabled=False,
            )
        except Exception as exc:
            # Counted as a step; the next step retries with this note in history.
            display.think_error(self.name, exc)
            context.messages.append(Message.assistant(f"Error while thinking: {exc}"))
            return None

        display.thought(self.name, reply.content, reply.tool_calls)

        if not reply.has_tool_calls:
            display.termination_fallback(self.name)
            return Terminate(text=reply.content)

        # The executor appends this message together with its results.
        return Invoke(message=reply)

    # ------------------------------------------------------------------
    # Act
    # ------------------------------------------------------------------

    def act(self, context: RunContext, action: Action) -> str:
        if isinstance(action, Terminate):
            return self._terminate(context, action)

        if not action.calls:
            return "No tool calls to execute"

        history = self._executor.execute_tool_calls(list(context.messages), action.message)
        context.messages = history

        tool_message = latest_tool_message(history)
        if tool_message is None:
            raise ToolExecutionError("Tool executor returned no tool-result message.")

        results = _summarize(tool_message.responses)
        if any(r.name == TERMINATE_TOOL_NAME for r in tool_message.responses):
            context.transition(AgentState.FINISHED)
            display.terminated(self.name)
        return results

    def _terminate(self, context: RunContext, action: Terminate) -> str:
        if action.text:
            context.messages.append(Message.assistant(action.text))

        tool = self._catalog.terminate_tool
        response = ToolResponse(id=TERMINATE_CALL_ID, name=tool.name, data=tool.handler({}))

        context.transition(AgentState.FINISHED)
        display.terminated(self.name)
        return _summarize([response])
