"""Checkpoint store - durable per-permit submission progress."""

import logging
import re
from pathlib import Path
from typing import Any

from flashpermit.errors import CheckpointConflictError, InvalidTransitionError
from flashpermit.shared_views import (
	ACTIVE_STATUSES,
	ALLOWED_TRANSITIONS,
	Checkpoint,
	CheckpointStatus,
	utc_now,
)
from flashpermit.utils import atomic_write_json, path_lock, read_json

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r'[^A-Za-z0-9._-]')


class CheckpointStore:
	"""Stores one checkpoint document per permit id.

	Uses JSON files so the status-polling side can read them without going
	through the engine. Every write replaces the whole document atomically, so
	a reader never sees a checkpoint with some fields updated and others stale.
	"""

	def __init__(self, storage_dir: Path | str = 'flashpermit/checkpoints'):
		"""Initialize the CheckpointStore.

		Args:
			storage_dir: Directory holding checkpoint documents
		"""
		self.storage_dir = Path(storage_dir)
		self.storage_dir.mkdir(parents=True, exist_ok=True)
		self._lock = path_lock(self.storage_dir)
		logger.info(f'CheckpointStore initialized at {self.storage_dir}')

	def get(self, permit_id: str) -> Checkpoint | None:
		"""Load the checkpoint for a permit.

		Args:
			permit_id: Permit identifier

		Returns:
			The checkpoint, or None if the permit has never been run

		Raises:
			ValueError: If the stored document is invalid
		"""
		path = self._path(permit_id)
		if not path.exists():
			return None

		try:
			return Checkpoint.model_validate(read_json(path))
		except Exception as e:
			logger.error(f'Failed to load checkpoint {permit_id}: {e}')
			raise ValueError(f'Invalid checkpoint data: {e}') from e

	def put(self, checkpoint: Checkpoint) -> Checkpoint:
		"""Create a checkpoint, superseding a failed or never-started one.

		Args:
			checkpoint: Checkpoint to store

		Returns:
			The stored checkpoint

		Raises:
			CheckpointConflictError: If the permit already has a live or submitted checkpoint
		"""
		with self._lock:
			existing = self.get(checkpoint.permit_id)
			if existing is not None and (
				existing.status in ACTIVE_STATUSES or existing.status == CheckpointStatus.SUBMITTED
			):
				raise CheckpointConflictError(
					f'Permit {checkpoint.permit_id} already has a {existing.status.value} checkpoint'
				)

			self._write(checkpoint)

		logger.info(f'Checkpoint created: {checkpoint.permit_id} ({checkpoint.status.value}, attempt {checkpoint.attempt})')
		return checkpoint

	def update(self, permit_id: str, **changes: Any) -> Checkpoint:
		"""Apply a partial update to an existing checkpoint.

		``state_data`` in ``changes`` is merged into the stored map rather than
		replacing it.

		Args:
			permit_id: Permit identifier
			**changes: Checkpoint fields to change

		Returns:
			The updated checkpoint

		Raises:
			KeyError: If the permit has no checkpoint
			InvalidTransitionError: If the status change is not a forward transition
		"""
		with self._lock:
			current = self.get(permit_id)
			if current is None:
				raise KeyError(f'No checkpoint for permit {permit_id}')

			new_status = changes.get('status')
			if new_status is not None:
				new_status = CheckpointStatus(new_status)
				if new_status not in ALLOWED_TRANSITIONS[current.status]:
					raise InvalidTransitionError(
						f'Checkpoint {permit_id}: {current.status.value} -> {new_status.value} is not allowed'
					)
				changes['status'] = new_status

			if 'state_data' in changes:
				changes['state_data'] = {**current.state_data, **changes['state_data']}

			changes['updated_at'] = utc_now()
			updated = Checkpoint.model_validate({**current.model_dump(), **changes})
			self._write(updated)

		if new_status is not None and new_status != current.status:
			logger.info(f'Checkpoint {permit_id}: {current.status.value} → {new_status.value}')
		return updated

	def list_checkpoints(self, status: CheckpointStatus | None = None) -> list[Checkpoint]:
		"""List checkpoints, optionally filtered by status.

		Args:
			status: Optional status to filter by

		Returns:
			List of checkpoints
		"""
		checkpoints = []

		for path in self.storage_dir.glob('*.json'):
			try:
				checkpoint = Checkpoint.model_validate(read_json(path))
			except Exception as e:
				logger.warning(f'Failed to load checkpoint from {path}: {e}')
				continue

			if status and checkpoint.status != status:
				continue

			checkpoints.append(checkpoint)

		logger.info(f'Listed {len(checkpoints)} checkpoints')
		return checkpoints

	def _path(self, permit_id: str) -> Path:
		return self.storage_dir / f'{_SAFE_ID.sub("_", permit_id)}.json'

	def _write(self, checkpoint: Checkpoint) -> None:
		path = self._path(checkpoint.permit_id)
		try:
			atomic_write_json(path, checkpoint.model_dump(mode='json', by_alias=True))
		except OSError as e:
			logger.error(f'Failed to save checkpoint {checkpoint.permit_id}: {e}')
			raise IOError(f'Failed to save checkpoint: {e}') from e
