"""Error taxonomy for the scaffolding pipeline.

Every fatal condition derives from :class:`ScaffoldError` and carries the
process exit code the CLI should use.  Degraded-but-successful conditions are
reported as :class:`IntegrationWarning` values collected on the run report;
they are never raised.
"""

from __future__ import annotations


class ScaffoldError(Exception):
    """Base class for fatal scaffolding errors."""

    exit_code: int = 1

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(ScaffoldError):
    """Raised when an axis value is invalid or unsupported.

    Always raised before anything on disk has been touched.
    """

    exit_code = 2

    def __init__(self, message: str, axis: str = "", value: object = None) -> None:
        self.axis = axis
        self.value = value
        super().__init__(message)


class ConflictError(ScaffoldError):
    """Raised when the target already holds generated output."""

    exit_code = 3

    def __init__(self, message: str, conflicts: list[str] | None = None) -> None:
        self.conflicts = list(conflicts or [])
        super().__init__(message)


class GenerationError(ScaffoldError):
    """Raised when writing or rendering fails during generation.

    The transaction guard rolls back every artifact of the run before the
    error reaches the caller.
    """

    exit_code = 4

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class PlanningError(ScaffoldError):
    """Raised when the planner would emit an invalid plan.

    This is an internal defect (a forbidden layer edge, a cycle, a duplicate
    task), not a user input problem.
    """

    exit_code = 5


class AbortedError(ScaffoldError):
    """The user declined the confirmation summary."""

    exit_code = 130


class IntegrationWarning(UserWarning):
    """Advisory content was attached using a degraded strategy."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self.message
