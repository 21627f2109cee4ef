# ABOUTME: Player command-line interface: parses player input, plays turns and formats the results.
# ABOUTME: Free text is a player action; slash commands query session status and image jobs.

import asyncio
import re
import sys
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from agentic_rpg.config.settings import get_settings
from agentic_rpg.models.game_state import TurnRequest, TurnResponse
from agentic_rpg.models.image_job import ImageJobTicket, JobStatusReport
from agentic_rpg.orchestration.turn_orchestrator import TurnOrchestrator
from agentic_rpg.utils.logging import setup_logging
from agentic_rpg.workers.exceptions import JobNotFound

# ============================================================================
# Custom Exceptions
# ============================================================================


class InvalidCommandError(Exception):
    """Raised when a command cannot be parsed or executed"""
    pass


# ============================================================================
# Command Types
# ============================================================================


class PlayerCommandType(str, Enum):
    ACTION = "action"
    STATUS = "status"
    IMAGE = "image"
    HQ = "hq"
    HISTORY = "history"
    QUIT = "quit"


@dataclass
class ParsedCommand:
    """Parsed command with type and arguments"""
    command_type: PlayerCommandType
    args: dict
    raw_input: str


# ============================================================================
# Command Parser
# ============================================================================


class PlayerCommandParser:
    """
    Parser for player input.

    Supports:
    - Free-text actions: "I search the room"
    - Slash commands: "/status", "/image img_abc", "/hq img_abc", "/history", "/quit"
    """

    COMMAND_PATTERNS = {
        PlayerCommandType.STATUS: r'^/status$',
        PlayerCommandType.IMAGE: r'^/image(?:\s+(\S+))?$',
        PlayerCommandType.HQ: r'^/hq(?:\s+(\S+))?$',
        PlayerCommandType.HISTORY: r'^/history$',
        PlayerCommandType.QUIT: r'^/(?:quit|exit)$',
    }

    def parse(self, user_input: str) -> ParsedCommand:
        """
        Parse user input into a structured command.

        Args:
            user_input: Raw input string from the player

        Returns:
            ParsedCommand with type and arguments

        Raises:
            InvalidCommandError: If the input is empty, an unknown slash
                command, or a job command without a job id
        """
        if not user_input or not user_input.strip():
            raise InvalidCommandError("Cannot parse empty command")

        user_input = user_input.strip()

        for cmd_type, pattern in self.COMMAND_PATTERNS.items():
            match = re.match(pattern, user_input, re.IGNORECASE)
            if match:
                return self._parse_matched_command(cmd_type, match, user_input)

        if user_input.startswith("/"):
            raise InvalidCommandError(f"Unknown command: {user_input.split()[0]}")

        return ParsedCommand(
            command_type=PlayerCommandType.ACTION,
            args={"text": user_input},
            raw_input=user_input
        )

    def _parse_matched_command(
        self,
        cmd_type: PlayerCommandType,
        match: re.Match,
        raw_input: str
    ) -> ParsedCommand:
        if cmd_type in (PlayerCommandType.IMAGE, PlayerCommandType.HQ):
            job_id = match.group(1)
            if not job_id:
                raise InvalidCommandError(f"/{cmd_type.value} needs a job id")
            return ParsedCommand(
                command_type=cmd_type,
                args={"job_id": job_id},
                raw_input=raw_input
            )

        return ParsedCommand(command_type=cmd_type, args={}, raw_input=raw_input)


# ============================================================================
# Output Formatter
# ============================================================================


class CLIFormatter:
    """Formats turn output, job status and session status for the terminal"""

    HEADER_BORDER = "═"
    SUCCESS_MARKER = "✓"
    FAILURE_MARKER = "✗"

    def format_header(self, session_id: str, character_name: str, scene_title: str) -> str:
        width = 70
        lines = [
            "╔" + self.HEADER_BORDER * (width - 2) + "╗",
            "║" + "Agentic RPG".center(width - 2) + "║",
            "║" + f"Session: {session_id}".center(width - 2) + "║",
            "╚" + self.HEADER_BORDER * (width - 2) + "╝",
            "",
            f"Playing as {character_name}" + (f" in {scene_title}" if scene_title else ""),
            "Type what your character does, or /status, /image <job>, /hq <job>, /history, /quit",
        ]
        return "\n".join(lines)

    def format_turn(self, response: TurnResponse) -> str:
        lines = [f"\n[Turn {response.turn_count}]", "", response.narration, ""]

        if response.action_log:
            lines.append("Action log:")
            for entry in response.action_log:
                lines.append(f"  - {self.format_log_entry(entry)}")
            lines.append("")

        if response.choices:
            lines.append("What next?")
            for i, choice in enumerate(response.choices, 1):
                lines.append(f"  {i}. {choice}")

        if response.image_request is not None and response.image_request.job_id:
            lines.append(
                f"\n[Image] {response.image_request.job_id} queued "
                f"(~{response.image_request.eta_seconds}s)"
            )

        for warning in response.warnings:
            lines.append(f"  ! {warning}")

        return "\n".join(lines)

    def format_log_entry(self, entry: Any) -> str:
        if entry.type == "check":
            marker = self.SUCCESS_MARKER if entry.outcome == "success" else self.FAILURE_MARKER
            return (
                f"{marker} {entry.ability} check: {entry.roll} + {entry.modifier} = "
                f"{entry.total} vs DC {entry.dc} ({entry.outcome})"
            )
        if entry.type == "combat":
            text = f"Attack: {entry.total} vs AC {entry.target_ac} "
            if not entry.hit:
                return text + "(miss)"
            text += f"(hit for {entry.damage_total}{', critical' if entry.critical else ''})"
            return text + (", target defeated" if entry.defeated else "")
        if entry.type == "saving_throw":
            outcome = "saved" if entry.saved else "failed"
            return f"Saving throw: {entry.total} vs DC {entry.dc} ({outcome})"
        if entry.type == "inventory":
            parts = []
            if entry.gold_delta:
                parts.append(f"{entry.gold_delta:+d} gold")
            parts.extend(f"+{name}" for name in entry.items_added)
            parts.extend(f"-{name}" for name in entry.items_removed)
            return "Inventory: " + (", ".join(parts) or "no change")
        return entry.message

    def format_job_status(self, report: JobStatusReport) -> str:
        if report.status == "not_found":
            return f"\n{self.FAILURE_MARKER} Image job {report.job_id} not found"

        lines = [f"\n[Image {report.job_id}] {report.status} ({report.progress}%)"]
        if report.url:
            suffix = " (placeholder)" if report.fallback else ""
            lines.append(f"  {report.url}{suffix}")
        elif report.eta_seconds:
            lines.append(f"  about {report.eta_seconds}s remaining")
        if report.error:
            lines.append(f"  {report.error}")
        return "\n".join(lines)

    def format_ticket(self, ticket: ImageJobTicket) -> str:
        return f"\n[Image] {ticket.job_id} {ticket.status.value} (~{ticket.eta_seconds}s)"

    def format_session_status(self, stats: dict) -> str:
        character = stats["character"]
        world_time = stats.get("world_time") or {}
        lines = [
            "\n" + "=" * 50,
            "SESSION STATUS",
            "=" * 50,
            f"Session: {stats['session_id']}",
            f"Turns played: {stats['turn_count']}",
            f"Scene: {stats['current_scene_id']}",
            f"Character: {character['name']} (level {character['level']})",
            f"HP: {character['hp']}",
            f"Resources: {', '.join(f'{k}={v}' for k, v in character['resources'].items()) or 'none'}",
            f"Inventory: {', '.join(character['inventory']) or 'empty'}",
        ]
        if world_time:
            lines.append(f"Time: day {world_time.get('day')}, {world_time.get('time_of_day')}")
        lines.append("=" * 50)
        return "\n".join(lines)

    def format_history(self, traces: list) -> str:
        if not traces:
            return "\nNo turns played yet"
        lines = ["\nRecent turns:"]
        for trace in traces:
            lines.append(
                f"  Turn {trace.turn}: \"{trace.player_input}\" "
                f"({len(trace.tool_calls)} tool call(s), seed {trace.turn_seed})"
            )
        return "\n".join(lines)

    def format_error(
        self,
        error_type: str,
        message: str,
        suggestion: str | None = None
    ) -> str:
        lines = [
            f"\n{self.FAILURE_MARKER} ERROR: {error_type}",
            f"  {message}"
        ]
        if suggestion:
            lines.append(f"\n  Suggestion: {suggestion}")
        return "\n".join(lines)

    def format_prompt(self) -> str:
        return "\n> "


# ============================================================================
# Player CLI
# ============================================================================


class PlayerCLI:
    """
    Main CLI loop for one player session.

    Reads player input, plays turns through the orchestrator and prints the
    formatted results until /quit or end of input.
    """

    def __init__(
        self,
        orchestrator: TurnOrchestrator,
        session_id: str = "local",
        player_id: str = "player",
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], Any] = print,
    ):
        """
        Args:
            orchestrator: TurnOrchestrator that plays the turns
            session_id: Session to play in (created on first turn)
            player_id: Player owning the session
            input_func: Reads one line of input (injected for testing)
            output_func: Writes formatted output (injected for testing)
        """
        self.parser = PlayerCommandParser()
        self.formatter = CLIFormatter()
        self.orchestrator = orchestrator
        self.session_id = session_id
        self.player_id = player_id
        self._input = input_func
        self._output = output_func
        self._should_exit = False

    async def handle_command(self, parsed: ParsedCommand) -> str:
        """
        Execute a parsed command.

        Returns:
            Formatted text to show the player
        """
        if parsed.command_type == PlayerCommandType.ACTION:
            response = await self.orchestrator.submit_turn(TurnRequest(
                session_id=self.session_id,
                player_id=self.player_id,
                player_input=parsed.args["text"],
            ))
            return self.formatter.format_turn(response)

        if parsed.command_type == PlayerCommandType.STATUS:
            stats = self.orchestrator.session_stats(self.session_id)
            if stats is None:
                return self.formatter.format_error("NoSession", "No turns played yet")
            return self.formatter.format_session_status(stats)

        if parsed.command_type == PlayerCommandType.IMAGE:
            return self.formatter.format_job_status(
                self.orchestrator.get_image_status(parsed.args["job_id"])
            )

        if parsed.command_type == PlayerCommandType.HQ:
            try:
                ticket = await self.orchestrator.rerender_hq(parsed.args["job_id"])
            except (JobNotFound, ValueError) as e:
                return self.formatter.format_error(
                    type(e).__name__,
                    str(e),
                    suggestion="Only finished preview images can be re-rendered"
                )
            return self.formatter.format_ticket(ticket)

        if parsed.command_type == PlayerCommandType.HISTORY:
            return self.formatter.format_history(self.orchestrator.traces(self.session_id))

        self._should_exit = True
        return "\nFarewell, adventurer."

    async def run(self) -> None:
        """Read, play and print until /quit or end of input"""
        session = self.orchestrator.get_session(self.session_id)
        if session is None:
            session = self.orchestrator.create_session(self.session_id, self.player_id)
        self._output(self.formatter.format_header(
            self.session_id, session.character.name, session.current_scene_id or ""
        ))

        while not self._should_exit:
            try:
                user_input = await asyncio.to_thread(self._input, self.formatter.format_prompt())
            except EOFError:
                break

            if not user_input.strip():
                continue

            try:
                parsed = self.parser.parse(user_input)
            except InvalidCommandError as e:
                self._output(self.formatter.format_error("InvalidCommandError", str(e)))
                continue

            self._output(await self.handle_command(parsed))

        await self.orchestrator.shutdown_session(self.session_id)


# ============================================================================
# Entry Point
# ============================================================================


async def _run_cli(session_id: str) -> None:
    settings = get_settings()
    orchestrator = TurnOrchestrator.from_settings(settings)
    pipeline = orchestrator.image_pipeline
    if pipeline is not None:
        pipeline.start_sweeper()
    try:
        await PlayerCLI(orchestrator, session_id=session_id).run()
    finally:
        if pipeline is not None:
            await pipeline.shutdown()


def main() -> None:
    """Entry point for running the player CLI"""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, log_dir=settings.log_dir, console_output=False)

    session_id = sys.argv[1] if len(sys.argv) > 1 else "local"
    try:
        asyncio.run(_run_cli(session_id))
    except KeyboardInterrupt:
        print("\nInterrupted")
    except Exception as e:
        print(f"\nFatal error: {e}")
        logger.exception("Fatal error in CLI")
        sys.exit(1)


if __name__ == "__main__":
    main()
