# ABOUTME: Exception definitions for orchestration layer errors.
# ABOUTME: Defines error types raised by TurnStateMachine and TurnOrchestrator.


class IllegalTransition(Exception):
    """Raised when a requested state transition is not in the legal table"""

    def __init__(self, from_state, to_state):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal transition: {getattr(from_state, 'value', from_state)} -> "
            f"{getattr(to_state, 'value', to_state)}"
        )


class ValidationRejected(Exception):
    """Raised when a turn output keeps failing validation past the revision cap"""

    def __init__(self, errors: list[str], attempts: int = 0):
        self.errors = list(errors)
        self.attempts = attempts
        super().__init__(
            f"Validation rejected after {attempts} revision(s): {'; '.join(self.errors)}"
        )


class MissingStateHandler(Exception):
    """Raised when the machine reaches a state with no registered handler"""

    pass
