"""Capture a SHAPE PHX login session.

Opens a visible browser on the portal. Log in by hand (including any 2FA),
then come back to the terminal and press ENTER. The session is written to
FLASHPERMIT_SESSION_FILE (shape-phx-session.json by default) and reused by
every submission until it expires.
"""

import asyncio
import logging

from dotenv import load_dotenv

from flashpermit.config import EngineConfig
from flashpermit.session.login import capture_login_session
from flashpermit.session.service import SessionStore

# Setup
load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def ask(prompt: str) -> bool:
	"""Read an answer from the terminal without blocking the event loop."""
	reply = await asyncio.to_thread(input, prompt)
	return reply.strip().lower() in ('', 'y', 'yes')


async def main():
	"""Main entry point."""
	config = EngineConfig.from_env()
	store = SessionStore(config.session_file, min_indicators=config.min_session_indicators)

	logger.info(f'Opening {config.portal_url}, log in and then return here')
	session = await capture_login_session(store, config, ask)

	if session is None:
		logger.warning('No session saved')
		return

	logger.info(f'✓ Session saved to {config.session_file.resolve()} ({session.cookie_count} cookies)')


if __name__ == '__main__':
	asyncio.run(main())
