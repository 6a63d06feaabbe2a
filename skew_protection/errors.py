"""Error types raised by the registry and the rollout controller.

Every error is local and recoverable: it is reported to the caller (an
operator or a CI job hitting the admin API) and leaves the routing snapshot
untouched. The request router never raises any of these.
"""

from typing import Optional


class SkewProtectionError(Exception):
    """Base class for control plane errors.

    Attributes:
        code: Stable machine-readable error code.
        status_code: HTTP status the admin API answers with.
    """

    code: str = "skew_protection_error"
    status_code: int = 500

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.identifier = identifier


class DuplicateIdentifierError(SkewProtectionError):
    """A deployment with the same identifier was already registered."""

    code = "duplicate_identifier"
    status_code = 409


class DeploymentNotFoundError(SkewProtectionError):
    """No deployment with the given identifier exists."""

    code = "not_found"
    status_code = 404


class InvalidStateError(SkewProtectionError):
    """The requested transition is not allowed from the current status."""

    code = "invalid_state"
    status_code = 409


class RolloutInProgressError(SkewProtectionError):
    """Another rollout or promotion currently holds the controller."""

    code = "rollout_in_progress"
    status_code = 409


class HealthCheckTimeoutError(SkewProtectionError):
    """A deployment did not become healthy within the rollout timeout."""

    code = "health_check_timeout"
    status_code = 504
