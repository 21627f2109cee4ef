#!/usr/bin/env python3
# ABOUTME: Demo script playing a short scripted adventure through the turn orchestrator.
# ABOUTME: Shows command parsing, turn output, session status, trace replay and a preview image job.

"""
Demo of the Agentic RPG turn engine

Plays a handful of turns with template narration and the mock image
generator, so no API keys or Redis server are needed.
"""

import asyncio

from agentic_rpg.interface.cli import CLIFormatter, InvalidCommandError, PlayerCommandParser
from agentic_rpg.models.game_state import TurnRequest
from agentic_rpg.orchestration.replay import replay_trace
from agentic_rpg.orchestration.turn_orchestrator import TurnOrchestrator
from agentic_rpg.persistence.session_store import InMemorySessionStore
from agentic_rpg.tools.combat import CombatEngine
from agentic_rpg.tools.rng import RNGEngine
from agentic_rpg.tools.rules import RulesEngine
from agentic_rpg.workers.image_pipeline import ImageJobPipeline, MockImageGenerator

SESSION_ID = "demo"

SCRIPT = [
    "I look around the tavern",
    "I buy an ale for 2 gold",
    "I attack the rowdy patron",
    "I sneak toward the cellar stairs",
    "I go down",
]


def demo_command_parsing():
    """Demonstrate command parsing"""
    print("\n" + "=" * 70)
    print("DEMO: Command Parsing")
    print("=" * 70)

    parser = PlayerCommandParser()

    for user_input in ["I pick the lock carefully", "/status", "/image img_abc", "/hq", "/dance"]:
        print(f"\nInput: {user_input}")
        try:
            parsed = parser.parse(user_input)
            print(f"  Type: {parsed.command_type.value}")
            print(f"  Args: {parsed.args}")
        except InvalidCommandError as e:
            print(f"  ERROR: {e}")


async def demo_turns(orchestrator: TurnOrchestrator, formatter: CLIFormatter):
    """Play the scripted actions and print each turn"""
    print("\n" + "=" * 70)
    print("DEMO: Playing Turns")
    print("=" * 70)

    session = orchestrator.create_session(SESSION_ID, "demo-player", seed=2024)
    print(formatter.format_header(SESSION_ID, session.character.name, session.current_scene_id))

    last_image = None
    for action in SCRIPT:
        print(f"\n> {action}")
        response = await orchestrator.submit_turn(
            TurnRequest(session_id=SESSION_ID, player_id="demo-player", player_input=action)
        )
        print(formatter.format_turn(response))
        if response.image_request is not None:
            last_image = response.image_request.job_id

    print(formatter.format_session_status(orchestrator.session_stats(SESSION_ID)))
    return last_image


async def demo_replay(orchestrator: TurnOrchestrator):
    """Replay every recorded turn from its seeds"""
    print("\n" + "=" * 70)
    print("DEMO: Trace Replay")
    print("=" * 70)

    for trace in orchestrator.traces(SESSION_ID):
        rng = RNGEngine()
        report = await replay_trace(trace, RulesEngine(rng), CombatEngine(rng))
        verdict = "reproducible" if report.reproducible else f"{len(report.mismatches)} mismatch(es)"
        print(f"  Turn {trace.turn} (seed {trace.turn_seed}): "
              f"{report.replayed} replayed, {report.skipped} skipped, {verdict}")


async def demo_image(pipeline: ImageJobPipeline, formatter: CLIFormatter, job_id: str | None):
    """Wait for the last preview, then request its HQ re-render"""
    print("\n" + "=" * 70)
    print("DEMO: Image Jobs")
    print("=" * 70)

    if job_id is None:
        print("  No image was requested")
        return

    print(formatter.format_job_status(pipeline.get_status(job_id)))
    print(formatter.format_job_status(await pipeline.wait_for(job_id, timeout=10)))

    ticket = await pipeline.rerender_hq(job_id)
    print(formatter.format_ticket(ticket))
    print(formatter.format_job_status(await pipeline.wait_for(ticket.job_id, timeout=10)))


async def main():
    print("\n" + "=" * 70)
    print("AGENTIC RPG DEMO")
    print("=" * 70)

    pipeline = ImageJobPipeline(generator=MockImageGenerator(preview_delay=0.2, hq_delay=0.5))
    orchestrator = TurnOrchestrator.from_settings(
        session_store=InMemorySessionStore(),
        image_pipeline=pipeline,
    )
    formatter = CLIFormatter()

    demo_command_parsing()
    try:
        job_id = await demo_turns(orchestrator, formatter)
        await demo_replay(orchestrator)
        await demo_image(pipeline, formatter, job_id)
    finally:
        await pipeline.shutdown()

    print("\n" + "=" * 70)
    print("Demo complete!")
    print("=" * 70)


if __name__ == "__main__":
    asyncio.run(main())
