"""Error classifier - maps raw automation failures to the closed error taxonomy."""

import asyncio
import logging
import re

from pydantic import BaseModel, ConfigDict, Field

from flashpermit.errors import AutomationError
from flashpermit.shared_views import ErrorKind

logger = logging.getLogger(__name__)

_TIMEOUT_PATTERN = re.compile(r'time(d)?\s*out|timeout exceeded|deadline exceeded', re.IGNORECASE)


class ClassifiedError(BaseModel):
	"""A failure reduced to its kind, keeping the raw message for operators."""

	model_config = ConfigDict(extra='forbid')

	kind: ErrorKind = Field(description='Classified failure kind, the only thing callers branch on')
	message: str = Field(description='Message suitable for surfacing to the caller')
	raw_message: str = Field(default='', description='Original exception text')
	step_name: str | None = Field(default=None, description='Step the failure happened in')


class ErrorClassifier:
	"""Reduces exceptions raised while driving the portal to an ErrorKind.

	Anything that is not a known automation error or a timeout is treated as an
	unknown portal state: the engine never guesses its way past a page it does
	not recognise.
	"""

	def classify(self, error: BaseException, step_name: str | None = None) -> ClassifiedError:
		"""Classify an exception.

		Args:
			error: The raised exception
			step_name: Step being executed when it was raised, if any

		Returns:
			ClassifiedError
		"""
		raw = str(error) or error.__class__.__name__

		if isinstance(error, AutomationError):
			return ClassifiedError(
				kind=error.kind,
				message=error.message,
				raw_message=raw,
				step_name=error.step_name or step_name,
			)

		if isinstance(error, (TimeoutError, asyncio.TimeoutError)) or _TIMEOUT_PATTERN.search(raw):
			return ClassifiedError(
				kind=ErrorKind.STEP_TIMEOUT,
				message=f'Timed out: {raw}',
				raw_message=raw,
				step_name=step_name,
			)

		logger.debug(f'Unrecognised failure {error.__class__.__name__} classified as unknown portal state')
		return ClassifiedError(
			kind=ErrorKind.UNKNOWN_PORTAL_STATE,
			message=f'Unexpected portal state: {raw}',
			raw_message=raw,
			step_name=step_name,
		)
