"""Error taxonomy shared by every engine component."""

from typing import Any, Dict, Optional


class AgentCRMError(Exception):
    """Base error. Carries enough detail for a caller to decide on a retry."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


# ===========================================
# Upstream service errors
# ===========================================

class DatastoreError(AgentCRMError):
    """A datastore statement failed."""


class InferenceError(AgentCRMError):
    """The generative inference call failed or returned nothing usable."""


class EmailDeliveryError(AgentCRMError):
    """The outbound email collaborator rejected or failed a send."""


class NotFoundError(AgentCRMError):
    """A referenced row does not exist."""


# ===========================================
# Extraction errors (never escape the extractor)
# ===========================================

class SignalDecodeError(AgentCRMError):
    """Model output could not be decoded into a structured value."""


# ===========================================
# Invariant violations
# ===========================================

class InvariantViolation(AgentCRMError):
    """An attempted mutation would break a state-machine or uniqueness rule."""


class InvalidTransition(InvariantViolation):
    """The entity is not in a state that allows the requested transition."""


class ActionNotApproved(InvariantViolation):
    """Execution was attempted on an action that still needs approval."""


class DuplicateActiveDeal(InvariantViolation):
    """The lead already owns a deal outside the closed stages."""


class RunClosedError(InvariantViolation):
    """A write was attempted on an agent run that already reached a terminal status."""
