# tools.py
# Tool catalog: the static set of callables an agent may invoke.
#
# The cycle never calls handlers directly; ToolExecutor resolves calls
# against a ToolCatalog. The reserved termination tool is part of every
# catalog so that termination always resolves locally.

import os
from typing import Any, Callable, Iterator

from pydantic import BaseModel, ConfigDict, Field

TERMINATE_TOOL_NAME = "doTerminate"
TERMINATE_CALL_ID = "call_terminate"

ARTIFACT_TAG = "[ARTIFACT_GENERATED]"
ARTIFACT_PATH_PREFIX = "Artifact written to:"


# ---------------------------------------------------------------------------
# Artifact marker
# ---------------------------------------------------------------------------


def artifact_marker(path: str) -> str:
    """Text a tool returns to report a durable output file."""
    return f"{ARTIFACT_TAG} {ARTIFACT_PATH_PREFIX} {path}"


def extract_artifact_path(text: str) -> str | None:
    """
    Return the path carried by an artifact marker in ``text``.

    None when the tag is absent, or when the tag is present without a
    path prefix following it.
    """
    tag_at = text.find(ARTIFACT_TAG)
    if tag_at == -1:
        return None
    prefix_at = text.find(ARTIFACT_PATH_PREFIX, tag_at)
    if prefix_at == -1:
        return None
    tail = text[prefix_at + len(ARTIFACT_PATH_PREFIX):]
    path = tail.split("\n", 1)[0].strip()
    return path or None


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class Tool(BaseModel):
    """A named callable the model may request."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the handler's arguments.",
    )
    handler: Callable[[dict], str]

    def function_schema(self) -> dict[str, Any]:
        """OpenAI function-tool rendering."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _tool_terminate(args: dict) -> str:
    return "Task finished."


TERMINATE_TOOL = Tool(
    name=TERMINATE_TOOL_NAME,
    description=(
        "Stop the interaction. Call this when the request is fully answered "
        "or when you cannot make further progress."
    ),
    handler=_tool_terminate,
)


class ToolCatalog:
    """Name-keyed tool registry. Always contains the termination tool."""

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {TERMINATE_TOOL_NAME: TERMINATE_TOOL}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools and tool.name != TERMINATE_TOOL_NAME:
            raise ValueError(f"Tool '{tool.name}' is already registered.")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    @property
    def terminate_tool(self) -> Tool:
        return self._tools[TERMINATE_TOOL_NAME]

    def schemas(self) -> list[dict[str, Any]]:
        return [tool.function_schema() for tool in self]

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


# ---------------------------------------------------------------------------
# Demo tools
# ---------------------------------------------------------------------------


SEARCH_RESULT_LIMIT = 4
SNIPPET_LENGTH = 240


def _tool_web_search(args: dict) -> str:
    from ddgs import DDGS
    query = args.get("query", "").strip()
    if not query:
        return "Error: no query provided."

    try:
        hits = list(DDGS().text(query, max_results=SEARCH_RESULT_LIMIT))
    except Exception as e:
        return f"Search failed: {e}"
    if not hits:
        return f"No travel results for '{query}'."

    # One numbered entry per source.
    lines = [f"Travel research for '{query}':"]
    for n, hit in enumerate(hits, start=1):
        snippet = " ".join(hit.get("body", "").split())
        if len(snippet) > SNIPPET_LENGTH:
            snippet = snippet[:SNIPPET_LENGTH].rstrip() + "..."
        lines.append(f"{n}. {hit.get('title') or 'Untitled'} ({hit.get('href', 'no link')})")
        if snippet:
            lines.append(f"   {snippet}")
    return "\n".join(lines)


def _tool_write_plan(args: dict) -> str:
    path = args.get("path", "").strip()
    content = args.get("content", "")
    if not path:
        return "Error: no path provided."
    path = os.path.abspath(path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(content)
    return artifact_marker(path)


ECHO_TOOL = Tool(
    name="echo",
    description="Repeat a message back verbatim.",
    parameters={
        "type": "object",
        "properties": {"message": {"type": "string"}},
        "required": ["message"],
    },
    handler=lambda args: args.get("message", ""),
)

WEB_SEARCH_TOOL = Tool(
    name="web_search",
    description="Search the web for current information (destinations, weather, opening hours, prices).",
    parameters={
        "type": "object",
        "properties": {"query": {"type": "string"}},
        "required": ["query"],
    },
    handler=_tool_web_search,
)

WRITE_PLAN_TOOL = Tool(
    name="write_plan",
    description="Save a finished plan document to a local file.",
    parameters={
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "content": {"type": "string"},
        },
        "required": ["path", "content"],
    },
    handler=_tool_write_plan,
)


def default_catalog() -> ToolCatalog:
    return ToolCatalog([ECHO_TOOL, WEB_SEARCH_TOOL, WRITE_PLAN_TOOL])
