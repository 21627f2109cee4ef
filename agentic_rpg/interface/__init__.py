"""Player-facing terminal interface"""

from .cli import CLIFormatter, InvalidCommandError, PlayerCLI, PlayerCommandParser, PlayerCommandType

__all__ = [
    "CLIFormatter",
    "InvalidCommandError",
    "PlayerCLI",
    "PlayerCommandParser",
    "PlayerCommandType",
]
