"""Interactive login capture - produces the session file the engine runs on."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from flashpermit.config import EngineConfig
from flashpermit.portal.page import open_portal_page
from flashpermit.session.service import SessionStore
from flashpermit.session.views import Session

logger = logging.getLogger(__name__)

# Portal sets a few more cookies right after login completes
SETTLE_SECONDS = 2.0

Confirm = Callable[[str], Awaitable[bool]]


async def capture_login_session(
	store: SessionStore,
	config: EngineConfig,
	confirm: Confirm,
	page_factory: Callable[[Session | None, EngineConfig], Any] = open_portal_page,
) -> Session | None:
	"""Let an operator log in by hand and save the resulting browser session.

	Args:
		store: Store that owns the session file
		config: Engine configuration (the browser is always visible)
		confirm: Asks the operator a question, returns True to continue
		page_factory: Opens a page for a session

	Returns:
		The saved session, or None if the operator cancelled
	"""
	visible = config.model_copy(update={'headless': False})

	async with page_factory(None, visible) as page:
		await page.goto(config.portal_url)
		logger.info('Browser is open, waiting for the operator to log in')

		if not await confirm('Press ENTER after you have fully logged in... '):
			logger.info('Login capture cancelled')
			return None

		snapshot = await page.snapshot()
		storage_state = await page.storage_state()
		check = store.validate(Session(storage_state=storage_state), snapshot)
		logger.info(f'Login confidence: {check.score}/{len(check.indicators)} indicators')

		if not check.valid:
			logger.warning('Login may not be complete, make sure the page shows your account or a Logout link')
			if not await confirm('Save the session anyway? [y/N] '):
				logger.info('Login capture cancelled')
				return None

		await asyncio.sleep(SETTLE_SECONDS)
		session = store.save_storage_state(await page.storage_state())

	if session.cookie_count < 3:
		logger.warning(f'Only {session.cookie_count} cookies saved, login may not have completed')
	return session
