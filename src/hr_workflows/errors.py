"""Error kinds raised by the workflows.

Every failure surfaces as one of four distinct kinds so a calling layer
can map it to a response without parsing messages:

- ForbiddenError: the actor's role or identity does not permit the call
- InvalidInputError: the payload fails validation or references
  something that does not resolve
- NotFoundError: the target entity does not exist
- InvalidStateError: the entity's lifecycle state forbids the call
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hr_workflows.events.types import Effect


class WorkflowError(Exception):
    """Base class for workflow failures."""

    code = "workflow_error"

    def __init__(self, message: str):
        self.message = message
        # Effects of work already committed before the failure (payroll
        # batches); the runner still emits them.
        self.committed_effects: list[Effect] = []
        super().__init__(message)


class ForbiddenError(WorkflowError):
    """Raised when the actor may not perform the operation."""

    code = "forbidden"


class InvalidInputError(WorkflowError):
    """Raised when the payload is invalid."""

    code = "invalid_input"


class NotFoundError(WorkflowError):
    """Raised when the referenced entity does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidStateError(WorkflowError):
    """Raised when the entity's current state forbids the operation."""

    code = "invalid_state"


def attach_committed_effects(exc: Exception, effects: list[Effect]) -> None:
    """Record on ``exc`` the effects of work committed before it was raised.

    Works for any exception, so a driver error halfway through a batch
    still carries what the earlier employees committed.
    """
    exc.committed_effects = list(effects) + committed_effects_of(exc)


def committed_effects_of(exc: Exception) -> list[Effect]:
    return list(getattr(exc, "committed_effects", None) or [])
