"""Domain errors for device cleanup.

Kept separate from ``intune.api.exceptions`` so the domain layer stays
free of infrastructure imports.
"""


class InvalidArgumentError(ValueError):
    """Raised for malformed classifier/planner parameters.

    Attributes:
        argument: Name of the offending parameter
        value: The rejected value
    """

    def __init__(self, argument: str, value, constraint: str):
        super().__init__(f"{argument}={value!r} is invalid: {constraint}")
        self.argument = argument
        self.value = value
        self.constraint = constraint
