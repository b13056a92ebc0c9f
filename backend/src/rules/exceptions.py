"""Rule learning exceptions"""


class RuleError(Exception):
    """Base exception for rule operations"""
    pass


class RuleNotFoundError(RuleError):
    """Rule id does not exist (or is outside the caller's project)"""
    pass


class InvalidTransitionError(RuleError):
    """Requested state change is not in the transition table"""

    def __init__(self, from_state, to_state):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid rule transition: {from_state} -> {to_state}")


class DuplicateRuleError(RuleError):
    """An equivalent rule is already ENABLED"""
    pass
