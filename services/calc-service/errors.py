"""
Domain errors raised by the calculation engine and service.

Each is a value-level failure returned to the immediate caller; the HTTP
layer owns the mapping to status codes (see exceptions.py).
"""


class CalculationError(Exception):
    """Base class for calculation tree errors."""

    message = "Calculation error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidOperationError(CalculationError):
    message = "Invalid operation. Must be one of: +, -, *, /"

    def __init__(self, operation: object = None):
        super().__init__()
        self.operation = operation


class DivisionByZeroError(CalculationError):
    message = "Division by zero is not allowed"


class ParentNotFoundError(CalculationError):
    message = "Parent calculation not found"

    def __init__(self, parent_id: int):
        super().__init__()
        self.parent_id = parent_id


class CorruptTreeError(CalculationError):
    """Ancestor chain did not terminate within the configured bound."""

    message = "Calculation tree is corrupt"

    def __init__(self, node_id: int, reason: str):
        super().__init__(f"{self.message}: {reason} (starting at id={node_id})")
        self.node_id = node_id
