# display.py
# All terminal output for the ReAct harness.
#
# This module owns presentation entirely. The controller, the think/act
# cycle and the backends never format strings; they call named
# functions here. Swap this file to change the entire UI.
#
# Colour language:
#   cyan: controller / routing events
#   blue: model requests and responses
#   yellow: budget and stream lifecycle
#   green: success / termination
#   red: failures
#   magenta: think/act internals (Thought / Action / Observation)

import json

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from react_harness.models import ToolCall

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return escape(value[:max_len]) + "…"
    return escape(value)


# ---------------------------------------------------------------------------
# Run entry
# ---------------------------------------------------------------------------


def banner(agent_name: str, model: str, max_steps: int) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]ReAct Harness[/bold cyan]\n"
            "[dim]Bounded think/act loop with tool-call termination[/dim]\n\n"
            f"[dim]Agent     :[/dim] [white]{escape(agent_name)}[/white]\n"
            f"[dim]Model     :[/dim] [white]{model}[/white]\n"
            f"[dim]Max steps :[/dim] [white]{max_steps}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def prompt_received(agent_name: str, prompt: str) -> None:
    console.print()
    console.print(Rule(f"[cyan]NEW RUN: {escape(agent_name)}[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(prompt)}[/white]",
            title=_label("USER PROMPT", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def stream_rejected(agent_name: str, error: Exception) -> None:
    console.print(_label("STREAM", "red"), f"[red] {escape(agent_name)} refused to start: {escape(str(error))}[/red]")


# ---------------------------------------------------------------------------
# Step loop
# ---------------------------------------------------------------------------


def step_start(step: int, max_steps: int) -> None:
    console.print()
    console.print(f"[bold cyan]  STEP [{step}/{max_steps}][/bold cyan]")


def step_result(step: int, result: str) -> None:
    console.print(f"  [cyan]↳ Step {step} result[/cyan]  [dim white]{_mono(result, 160)}[/dim white]")


def max_steps_reached(max_steps: int) -> None:
    console.print()
    console.print(
        _label("BUDGET", "yellow"),
        f"[yellow] Reached max steps ({max_steps}) without a terminal signal, finishing.[/yellow]",
    )


def artifact_detected(step: int, path: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold green]Step {step} produced an artifact.[/bold green]\n"
            f"[white]{escape(path)}[/white]\n"
            "[dim]Returning the artifact path instead of the step log.[/dim]",
            title=_label("ARTIFACT", "green"),
            border_style="green",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Think / act
# ---------------------------------------------------------------------------


def thought(agent_name: str, text: str, calls: list[ToolCall]) -> None:
    if text:
        console.print(f"  [magenta]Thought[/magenta]  [dim white]{_mono(text, 200)}[/dim white]")
    console.print(f"  [magenta]{escape(agent_name)}[/magenta] [dim]selected {len(calls)} tool(s)[/dim]")
    for call in calls:
        console.print(f"  [dim]   · {call.name} {_mono(call.arguments, 80)}[/dim]")


def termination_fallback(agent_name: str) -> None:
    console.print(
        f"  [yellow]↳ {escape(agent_name)} made no tool calls, treating the reply as termination.[/yellow]"
    )


def think_error(agent_name: str, error: Exception) -> None:
    console.print(
        Panel(
            f"[bold red]{escape(agent_name)} could not think.[/bold red]\n\n[white]{escape(str(error))}[/white]\n"
            "[dim]Recorded in the conversation; the step still counts against the budget.[/dim]",
            title=_label("THINK FAILED", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def tool_action(tool: str, args: dict) -> None:
    console.print(
        f"  [magenta]Action[/magenta]   [bold white]{escape(tool)}[/bold white]"
        f"  [dim]{_mono(json.dumps(args), 100)}[/dim]"
    )


def tool_observation(observation: str) -> None:
    console.print(f"  [magenta]Observe[/magenta]  [white]{_mono(observation, 140)}[/white]")


def tool_not_found(tool_name: str) -> None:
    console.print(
        Panel(
            f"[bold red]Tool [white]{escape(repr(tool_name))}[/white] is not registered.[/bold red]\n"
            "[dim]The model requested a tool outside the catalog. Ending the run.[/dim]",
            title=_label("TOOL NOT FOUND ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def terminated(agent_name: str) -> None:
    console.print(f"  [bold green]✓ {escape(agent_name)} called the termination tool.[/bold green]")


# ---------------------------------------------------------------------------
# Model traffic
# ---------------------------------------------------------------------------


def model_request(user_text: str) -> None:
    console.print(f"  [blue]AI Request[/blue]   [dim white]{_mono(user_text, 160)}[/dim white]")


def model_response(text: str, call_count: int) -> None:
    console.print(
        f"  [blue]AI Response[/blue]  [dim white]{_mono(text, 160)}[/dim white]"
        f"  [dim]({call_count} tool call(s))[/dim]"
    )


# ---------------------------------------------------------------------------
# Stream lifecycle
# ---------------------------------------------------------------------------


def stream_timeout(agent_name: str) -> None:
    console.print()
    console.print(_label("STREAM", "yellow"), f"[yellow] {escape(agent_name)} timed out, closing stream.[/yellow]")


def stream_closed(agent_name: str) -> None:
    console.print(_label("STREAM", "yellow"), f"[dim yellow] {escape(agent_name)} stream completed.[/dim yellow]")


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def final_result(result: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result)}[/white]",
            title=_label("RESULT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def run_error(agent_name: str, error: Exception) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(agent_name)} failed: {escape(str(error))}[/bold white]\n"
            "[dim]Run ended in ERROR.[/dim]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


def cleanup_failed(agent_name: str, error: Exception) -> None:
    console.print(_label("CLEANUP", "red"), f"[red] {escape(agent_name)} cleanup raised: {escape(str(error))}[/red]")
