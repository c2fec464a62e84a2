"""Per-permit exclusivity locks."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from flashpermit.errors import ConcurrentSubmissionError

logger = logging.getLogger(__name__)


class PermitLocks:
	"""Non-blocking, in-process locks keyed by permit id.

	A second call for a permit that is already being driven fails immediately
	instead of queueing behind the first one.
	"""

	def __init__(self):
		self._held: set[str] = set()

	@asynccontextmanager
	async def hold(self, permit_id: str) -> AsyncIterator[None]:
		"""Hold the lock for a permit for the duration of the block.

		Raises:
			ConcurrentSubmissionError: If another call holds the lock
		"""
		if permit_id in self._held:
			logger.warning(f'Permit {permit_id} is already being processed')
			raise ConcurrentSubmissionError(f'Another submission for permit {permit_id} is in progress')

		self._held.add(permit_id)
		try:
			yield
		finally:
			self._held.discard(permit_id)

	def is_held(self, permit_id: str) -> bool:
		return permit_id in self._held

	def __len__(self) -> int:
		return len(self._held)
