# run.py
# Entry point. Config and wiring only; no loop logic lives here.
#
# Swap the model string (REACT_HARNESS_MODEL) for any OpenRouter-supported model.
# https://openrouter.ai/models

import argparse

from react_harness import display
from react_harness.backends import LoggingModelBackend, OpenAIModelBackend
from react_harness.config import AgentSettings
from react_harness.react import ToolCallAgent
from react_harness.tools import TERMINATE_TOOL_NAME, default_catalog

TRAVEL_MAX_STEPS = 15

TRAVEL_SYSTEM_PROMPT = f"""\
You are an experienced travel planner.
You research destinations, build day-by-day itineraries, estimate budgets,
and recommend hotels, restaurants and sights with practical local tips.

Use the available tools for anything that needs outside information or
produces a file. Always request tools through structured tool calls.

When the plan is complete, or you cannot make further progress, you MUST
call the `{TERMINATE_TOOL_NAME}` tool to end the interaction.\
"""

TRAVEL_NEXT_STEP_PROMPT = f"""\
Plan the user's trip systematically:

1. Work out what they want: interests, budget, duration, dates, group size
   and any special requirements.
2. Research with the tools: destination conditions, sights, lodging, food
   and routes between them.
3. Produce a concrete itinerary with timings, costs and safety notes. Save
   longer plans with `write_plan`.

IMPORTANT: once the plan is finished, call `{TERMINATE_TOOL_NAME}`.\
"""

PROMPTS = [
    "Plan a one-day trip in Kyoto focused on temples and local food.",
    "I have a weekend in Lisbon on a modest budget. What should I do?",
]


def create_travel_agent(settings: AgentSettings | None = None) -> ToolCallAgent:
    settings = settings or AgentSettings.from_env()
    backend = OpenAIModelBackend(settings)
    display.banner("TravelPlanningAgent", backend.model, TRAVEL_MAX_STEPS)
    return ToolCallAgent(
        name="TravelPlanningAgent",
        model=LoggingModelBackend(backend),
        tools=default_catalog(),
        system_prompt=TRAVEL_SYSTEM_PROMPT,
        next_step_prompt=TRAVEL_NEXT_STEP_PROMPT,
        max_steps=TRAVEL_MAX_STEPS,
        stream_timeout=settings.stream_timeout,
    )


def _run_streaming(agent: ToolCallAgent, prompt: str, timeout: float | None) -> None:
    with agent.run_stream(prompt, timeout=timeout) as stream:
        for event in stream:
            print(f"[{event.type.value.upper()}] {event.content}")
    if stream.timed_out:
        print("[TIMEOUT] stream closed before the run finished")
    elif stream.error is not None:
        print(f"[ERROR] stream failed: {stream.error}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the travel-planning ReAct agent.")
    parser.add_argument("prompt", nargs="*", help="Prompt to run (defaults to the demo prompts).")
    parser.add_argument("--stream", action="store_true", help="Print steps as they complete.")
    parser.add_argument("--timeout", type=float, default=None, help="Streaming timeout in seconds.")
    args = parser.parse_args(argv)

    prompts = [" ".join(args.prompt)] if args.prompt else PROMPTS
    settings = AgentSettings.from_env()

    for prompt in prompts:
        # One agent per prompt: a finished agent cannot be re-run in place.
        agent = create_travel_agent(settings)
        if args.stream:
            _run_streaming(agent, prompt, args.timeout)
        else:
            result = agent.run(prompt)
            print(f"\n[RESULT]\n{result}\n")


if __name__ == "__main__":
    main()
