# backends.py
# External collaborators of the think/act cycle.
#
#   ModelBackend:  turns (history, system prompt, tool catalog) into one
#                   assistant message. Never executes tools itself.
#   ToolExecutor:  resolves an assistant message's tool calls against the
#                   catalog and returns the extended history. It is the
#                   only writer of assistant/tool-result pairs.

import json
from abc import ABC, abstractmethod

import openai
from openai import OpenAI

from react_harness import display
from react_harness.config import AgentSettings
from react_harness.errors import ModelBackendError, ToolExecutionError, ToolNotFoundError
from react_harness.models import Message, ToolCall, ToolResponse, latest_user_message
from react_harness.tools import ToolCatalog


# ---------------------------------------------------------------------------
# Model backends
# ---------------------------------------------------------------------------


class ModelBackend(ABC):
    """Contract for anything that can answer a think() call."""

    @abstractmethod
    def complete(
        self,
        history: list[Message],
        system_prompt: str,
        tools: ToolCatalog,
        tool_execution_enabled: bool = False,
    ) -> Message:
        """
        Return the next assistant message, possibly carrying tool calls.

        Raises ModelBackendError on transport or model failure.
        """


def _to_openai_messages(history: list[Message], system_prompt: str) -> list[dict]:
    """Render the conversation in chat-completions wire format."""
    messages: list[dict] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    for message in history:
        if message.role == "user":
            messages.append({"role": "user", "content": message.content})
        elif message.role == "assistant":
            entry: dict = {"role": "assistant", "content": message.content or None}
            if message.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments},
                    }
                    for call in message.tool_calls
                ]
            messages.append(entry)
        else:
            # One wire message per response; tool_call_id links it to its call.
            for response in message.responses:
                messages.append(
                    {"role": "tool", "tool_call_id": response.id, "content": response.data}
                )
    return messages


class OpenAIModelBackend(ModelBackend):
    """
    OpenAI-compatible chat-completions backend (OpenRouter by default).

    Example:
        backend = OpenAIModelBackend(AgentSettings.from_env())
        reply = backend.complete(history, SYSTEM_PROMPT, catalog)
    """

    def __init__(self, settings: AgentSettings, client: OpenAI | None = None) -> None:
        self._model = settings.model
        self._client = client or OpenAI(
            base_url=settings.base_url,
            api_key=settings.api_key,
        )

    @property
    def model(self) -> str:
        return self._model

    def complete(
        self,
        history: list[Message],
        system_prompt: str,
        tools: ToolCatalog,
        tool_execution_enabled: bool = False,
    ) -> Message:
        if tool_execution_enabled:
            raise ValueError(
                "OpenAIModelBackend never executes tools; "
                "resolve calls through a ToolExecutor instead."
            )

        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=_to_openai_messages(history, system_prompt),
                tools=tools.schemas(),
            )
        except openai.OpenAIError as exc:
            raise ModelBackendError(f"Model call failed: {exc}") from exc

        if not response.choices:
            raise ModelBackendError("Model returned no choices.")

        reply = response.choices[0].message
        calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
            for call in reply.tool_calls or []
        ]
        return Message.assistant((reply.content or "").strip(), calls)


class LoggingModelBackend(ModelBackend):
    """Wraps another backend and logs each request's user text and the reply."""

    def __init__(self, inner: ModelBackend) -> None:
        self._inner = inner

    def complete(
        self,
        history: list[Message],
        system_prompt: str,
        tools: ToolCatalog,
        tool_execution_enabled: bool = False,
    ) -> Message:
        user_message = latest_user_message(history)
        display.model_request(user_message.content if user_message else "[No user message]")

        reply = self._inner.complete(history, system_prompt, tools, tool_execution_enabled)

        display.model_response(reply.content or "[Empty output]", len(reply.tool_calls))
        return reply


# ---------------------------------------------------------------------------
# Tool execution
# ---------------------------------------------------------------------------


def _parse_arguments(call: ToolCall) -> dict:
    raw = (call.arguments or "").strip() or "{}"
    try:
        args = json.loads(raw, strict=False)
    except json.JSONDecodeError as exc:
        raise ToolExecutionError(
            f"Arguments for '{call.name}' are malformed: {exc}\nPayload: {raw}"
        ) from exc
    if not isinstance(args, dict):
        raise ToolExecutionError(f"Arguments for '{call.name}' must be a JSON object, got: {raw}")
    return args


class ToolExecutor:
    """Resolves tool calls sequentially, in request order."""

    def __init__(self, catalog: ToolCatalog) -> None:
        self._catalog = catalog

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    def execute_tool_calls(self, history: list[Message], message: Message) -> list[Message]:
        """
        Run every call on ``message`` and return a new history:
        ``history + [message, tool-result message]``.

        The input list is not modified. Raises ToolExecutionError (or
        ToolNotFoundError) if any call cannot be resolved.
        """
        responses: list[ToolResponse] = []

        for call in message.tool_calls:
            tool = self._catalog.get(call.name)
            if tool is None:
                display.tool_not_found(call.name)
                raise ToolNotFoundError(f"Tool '{call.name}' is not in the catalog.")

            args = _parse_arguments(call)
            display.tool_action(call.name, args)

            try:
                data = tool.handler(args)
            except Exception as exc:
                raise ToolExecutionError(f"Tool '{call.name}' failed: {exc}") from exc

            display.tool_observation(str(data))
            responses.append(ToolResponse(id=call.id, name=call.name, data=str(data)))

        return [*history, message, Message.tool(responses)]
