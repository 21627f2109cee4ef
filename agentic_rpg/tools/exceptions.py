# ABOUTME: Exception definitions for the tool layer (dice, rules, combat, inventory, world).
# ABOUTME: Defines error types raised by RNGEngine, RulesEngine, CombatEngine and ToolExecutor.


class InvalidDiceSpec(ValueError):
    """Raised when dice notation is malformed or uses unsupported dice"""

    pass


class InvalidAbility(ValueError):
    """Raised when an ability key is unrecognized or missing from the actor"""

    pass


class UnknownSkill(ValueError):
    """Raised when a skill name has no governing ability"""

    pass


class ToolExecutionFailed(Exception):
    """Raised when a single plan step fails; the turn continues with an error result"""

    def __init__(self, tool: str, message: str):
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.message = message


class SceneNotFound(KeyError):
    """Raised when a world update targets a scene the world store does not own"""

    pass
