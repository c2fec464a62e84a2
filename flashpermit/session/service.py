"""SessionStore - loads, scores and persists the portal browser session."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from flashpermit.errors import SessionMissingError
from flashpermit.portal.views import PageSnapshot
from flashpermit.session.views import Session, SessionCheck
from flashpermit.utils import atomic_write_json, path_lock, read_json

logger = logging.getLogger(__name__)

LOGIN_URL_MARKERS = ('/login', '/s/login', 'signin', 'sign-in')


class SessionStore:
	"""Owns the session file produced by the interactive login tool.

	The engine only reads the session, and asks the store to refresh it after a
	fully successful run. Writes replace the file atomically so a crash never
	leaves a truncated session behind.
	"""

	def __init__(self, session_file: Path | str, min_indicators: int = 2):
		"""Initialize the SessionStore.

		Args:
			session_file: Path of the storage-state document
			min_indicators: Logged-in indicators needed for a session to count as valid
		"""
		self.session_file = Path(session_file)
		self.min_indicators = min_indicators
		self._lock = path_lock(self.session_file)
		logger.info(f'SessionStore initialized at {self.session_file}')

	def load(self) -> Session:
		"""Load the persisted session.

		Returns:
			The session

		Raises:
			SessionMissingError: If no usable session file exists
		"""
		with self._lock:
			if not self.session_file.exists():
				raise SessionMissingError(
					f'Session file not found: {self.session_file}. Run the login tool to capture a new session.'
				)

			try:
				data = read_json(self.session_file)
			except (OSError, json.JSONDecodeError) as e:
				logger.error(f'Failed to read session file {self.session_file}: {e}')
				raise SessionMissingError(f'Session file is unreadable: {e}') from e

		if not isinstance(data, dict) or not isinstance(data.get('cookies'), list):
			raise SessionMissingError(f'Session file is not a storage-state document: {self.session_file}')

		saved_at = data.pop('saved_at', None) or self._mtime_iso()
		session = Session(storage_state=data, saved_at=saved_at)
		logger.info(f'Session loaded: {session.cookie_count} cookies, saved at {session.saved_at}')
		return session

	def validate(self, session: Session, snapshot: PageSnapshot) -> SessionCheck:
		"""Score the session against a fixed set of logged-in indicators.

		Indicator detection on a live portal page is unreliable, so a low score
		is only a signal. Callers decide whether it is fatal; ``login_required``
		is the one hard indicator.

		Args:
			session: Session in use
			snapshot: Current page

		Returns:
			SessionCheck with the per-indicator breakdown
		"""
		url = snapshot.url.lower()
		login_required = any(marker in url for marker in LOGIN_URL_MARKERS)

		indicators = {
			'has_cookies': session.cookie_count > 0,
			'not_login_url': not login_required,
			'logout_visible': snapshot.contains('Logout', 'Log Out'),
			'account_visible': snapshot.contains('My Account'),
			'balance_visible': snapshot.contains('Balance'),
			'apply_visible': snapshot.contains('Apply For Permit'),
		}

		check = SessionCheck(
			score=sum(indicators.values()),
			min_score=self.min_indicators,
			indicators=indicators,
			login_required=login_required,
		)

		if not check.valid:
			logger.warning(f'Session confidence low: {check.score}/{len(indicators)} indicators (url={snapshot.url})')
		else:
			logger.debug(f'Session confidence: {check.score}/{len(indicators)} indicators')

		return check

	def refresh(self, session: Session) -> None:
		"""Atomically overwrite the persisted session with fresh state.

		Args:
			session: Session holding the latest storage state
		"""
		self.save_storage_state(session.storage_state)

	def save_storage_state(self, storage_state: dict[str, Any]) -> Session:
		"""Persist a storage-state document with a new ``saved_at`` stamp.

		Args:
			storage_state: Cookies and origins as exported by the browser

		Returns:
			The session that was written
		"""
		session = Session(storage_state=dict(storage_state))
		document = {**session.storage_state, 'saved_at': session.saved_at}

		with self._lock:
			try:
				atomic_write_json(self.session_file, document)
			except OSError as e:
				logger.error(f'Failed to save session {self.session_file}: {e}')
				raise IOError(f'Failed to save session: {e}') from e

		logger.info(f'Session saved: {session.cookie_count} cookies at {self.session_file}')
		return session

	def _mtime_iso(self) -> str:
		try:
			mtime = self.session_file.stat().st_mtime
		except OSError:
			return datetime.now(timezone.utc).isoformat()
		return datetime.fromtimestamp(mtime, timezone.utc).isoformat()
