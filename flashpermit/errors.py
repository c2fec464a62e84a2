"""Exceptions raised inside the engine and its collaborators.

Every exception carries the :class:`ErrorKind` it maps to. The engine's public
entry points never let these escape; they are converted to ``FailedResult``.
"""

from flashpermit.shared_views import ErrorKind


class AutomationError(Exception):
	"""Base class for classified automation failures."""

	kind: ErrorKind = ErrorKind.UNKNOWN_PORTAL_STATE

	def __init__(self, message: str, step_name: str | None = None):
		super().__init__(message)
		self.message = message
		self.step_name = step_name


class SessionMissingError(AutomationError):
	kind = ErrorKind.SESSION_MISSING


class SessionExpiredError(AutomationError):
	kind = ErrorKind.SESSION_EXPIRED


class ConcurrentSubmissionError(AutomationError):
	kind = ErrorKind.CONCURRENT_SUBMISSION_IN_PROGRESS


class StepTimeoutError(AutomationError):
	kind = ErrorKind.STEP_TIMEOUT


class PortalValidationError(AutomationError):
	"""The portal rejected the entered data. ``message`` is the portal's own text."""

	kind = ErrorKind.PORTAL_VALIDATION_REJECTED


class UnknownPortalStateError(AutomationError):
	kind = ErrorKind.UNKNOWN_PORTAL_STATE


class NoActiveSubmissionError(AutomationError):
	kind = ErrorKind.NO_ACTIVE_SUBMISSION


class InvalidResumeStateError(AutomationError):
	kind = ErrorKind.INVALID_RESUME_STATE


class NoAutomationPathError(AutomationError):
	kind = ErrorKind.NO_AUTOMATION_PATH


class CheckpointConflictError(Exception):
	"""Raised when a write would create a second live checkpoint for a permit."""


class InvalidTransitionError(Exception):
	"""Raised when a checkpoint update would move its status backwards."""


class PaymentStillDue(Exception):
	"""Raised on resume when the portal still asks for the fee.

	Not a failure: the engine suspends the submission at the payment gate again.
	"""
