"""Portal page handle - bounded browser interactions on top of browser_use.

Every step receives the same explicit handle for its run, so distinct permits
can be automated concurrently, each in its own browser.
"""

import asyncio
import base64
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from browser_use.browser import BrowserProfile, BrowserSession
from browser_use.browser.events import (
	ClickElementEvent,
	NavigateToUrlEvent,
	ScreenshotEvent,
	SelectDropdownOptionEvent,
	SendKeysEvent,
	TypeTextEvent,
)

from flashpermit.config import EngineConfig
from flashpermit.errors import PortalValidationError, UnknownPortalStateError
from flashpermit.portal.views import PageSnapshot
from flashpermit.session.views import Session

logger = logging.getLogger(__name__)

SPINNER_SCRIPT = (
	"!!(document.querySelector('lightning-spinner:not([class*=\"hidden\"])')"
	" || document.querySelector('.slds-spinner'))"
)

VALIDATION_MARKERS = (
	'Review the errors on this page',
	'Complete this field',
	'We hit a snag',
	'is not valid',
)

_LABEL_ATTRIBUTES = ('aria-label', 'name', 'placeholder', 'title', 'id', 'value')


class PortalPage:
	"""One browser tab on the portal, owned by a single run.

	All interactions are bounded: element waits poll until
	``action_timeout_seconds`` and then raise ``TimeoutError``, which the
	classifier reports as a step timeout.
	"""

	def __init__(self, browser: BrowserSession, config: EngineConfig):
		"""Initialize the PortalPage.

		Args:
			browser: Started browser session
			config: Engine configuration (timeouts, polling)
		"""
		self.browser = browser
		self.config = config

	async def goto(self, url: str) -> None:
		logger.info(f'Navigating to {url}')
		await self._dispatch(NavigateToUrlEvent(url=url, new_tab=False), self.config.navigation_timeout_seconds)
		await self.wait_until_settled()

	async def snapshot(self) -> PageSnapshot:
		"""Capture the current URL and visible text without touching the page."""
		state = await asyncio.wait_for(
			self.browser.get_browser_state_summary(include_screenshot=False, cached=False),
			timeout=self.config.action_timeout_seconds,
		)
		text = await self._evaluate('document.body ? document.body.innerText : ""')
		return PageSnapshot(url=state.url or '', text=text or '')

	async def is_loading(self) -> bool:
		return bool(await self._evaluate(SPINNER_SCRIPT))

	async def wait_until_settled(self, max_wait_seconds: float | None = None) -> None:
		"""Wait for Lightning spinners to disappear.

		Raises:
			TimeoutError: If a spinner is still showing after the bound
		"""
		bound = max_wait_seconds or self.config.navigation_timeout_seconds
		deadline = time.monotonic() + bound
		while await self.is_loading():
			if time.monotonic() >= deadline:
				raise TimeoutError(f'Page still loading after {bound:.0f}s')
			await asyncio.sleep(self.config.poll_interval_seconds)

	async def expect_text(self, *markers: str) -> PageSnapshot:
		"""Wait until one of the markers is on the page.

		Args:
			*markers: Texts identifying the expected page

		Returns:
			Snapshot of the page once a marker is present

		Raises:
			TimeoutError: If the page is still loading when the bound expires
			UnknownPortalStateError: If the page settled on something else
		"""
		deadline = time.monotonic() + self.config.action_timeout_seconds
		while True:
			snapshot = await self.snapshot()
			if snapshot.contains(*markers):
				return snapshot
			if time.monotonic() >= deadline:
				break
			await asyncio.sleep(self.config.poll_interval_seconds)

		if await self.is_loading():
			raise TimeoutError(f'Timed out waiting for {markers!r} while the page was loading')
		raise UnknownPortalStateError(f'Expected one of {list(markers)} on {snapshot.url}, page shows something else')

	async def click(self, label: str, roles: tuple[str, ...] = ()) -> None:
		node = await self._wait_for_element(label, roles)
		logger.debug(f'Click: {label}')
		await self._dispatch(ClickElementEvent(node=node), self.config.action_timeout_seconds)
		await self.wait_until_settled()

	async def fill(self, label: str, value: str) -> None:
		node = await self._wait_for_element(label, ('textbox', 'searchbox', 'spinbutton', 'combobox'))
		logger.debug(f'Fill: {label} = {value}')
		await self._dispatch(TypeTextEvent(node=node, text=value, clear=True), self.config.action_timeout_seconds)

	async def select(self, label: str, option: str) -> None:
		"""Choose an option in a native select or a Lightning combobox."""
		node = await self._wait_for_element(label, ('combobox', 'listbox'))
		logger.debug(f'Select: {label} = {option}')

		if getattr(node, 'tag_name', '').lower() == 'select':
			await self._dispatch(SelectDropdownOptionEvent(node=node, text=option), self.config.action_timeout_seconds)
			return

		await self._dispatch(ClickElementEvent(node=node), self.config.action_timeout_seconds)
		option_node = await self._wait_for_element(option, ('option',))
		await self._dispatch(ClickElementEvent(node=option_node), self.config.action_timeout_seconds)

	async def check(self, label: str) -> None:
		node = await self._wait_for_element(label, ('checkbox', 'radio'))
		attributes = getattr(node, 'attributes', None) or {}
		if 'checked' in attributes or attributes.get('aria-checked') == 'true':
			logger.debug(f'Already checked: {label}')
			return
		logger.debug(f'Check: {label}')
		await self._dispatch(ClickElementEvent(node=node), self.config.action_timeout_seconds)

	async def press(self, keys: str) -> None:
		await self._dispatch(SendKeysEvent(keys=keys), self.config.action_timeout_seconds)

	async def has_element(self, label: str, roles: tuple[str, ...] = ()) -> bool:
		"""Single non-waiting lookup, for optional fields."""
		return await self._find_element(label, roles) is not None

	async def raise_for_validation_errors(self) -> None:
		"""Surface the portal's own validation message, verbatim.

		Raises:
			PortalValidationError: If the page shows a validation error
		"""
		snapshot = await self.snapshot()
		for line in snapshot.text.splitlines():
			stripped = line.strip()
			if stripped and any(marker.lower() in stripped.lower() for marker in VALIDATION_MARKERS):
				raise PortalValidationError(stripped)

	async def storage_state(self) -> dict[str, Any]:
		"""Export cookies and the current origin's local storage."""
		cdp_session = await self.browser.get_or_create_cdp_session()
		cookies = await asyncio.wait_for(
			cdp_session.cdp_client.send.Network.getAllCookies(session_id=cdp_session.session_id),
			timeout=self.config.action_timeout_seconds,
		)
		origin = await self._evaluate('location.origin')
		local_storage = await self._evaluate(
			'Object.keys(localStorage).map(k => ({name: k, value: localStorage.getItem(k)}))'
		)
		origins = [{'origin': origin, 'localStorage': local_storage or []}] if origin else []
		return {'cookies': cookies.get('cookies', []), 'origins': origins}

	async def screenshot(self, path: Path) -> Path:
		"""Save a full-page PNG screenshot of the current page.

		Args:
			path: File to write

		Returns:
			The written path
		"""
		screenshot_base64 = await self._dispatch(ScreenshotEvent(full_page=True), self.config.action_timeout_seconds)
		if not screenshot_base64:
			raise UnknownPortalStateError('Browser returned an empty screenshot')

		path.parent.mkdir(parents=True, exist_ok=True)
		path.write_bytes(base64.b64decode(screenshot_base64))
		logger.info(f'Screenshot saved: {path}')
		return path

	async def _dispatch(self, event: Any, timeout: float) -> Any:
		async def _run() -> Any:
			dispatched = self.browser.event_bus.dispatch(event)
			await dispatched
			return await dispatched.event_result(raise_if_any=True, raise_if_none=False)

		return await asyncio.wait_for(_run(), timeout=timeout)

	async def _evaluate(self, expression: str) -> Any:
		cdp_session = await self.browser.get_or_create_cdp_session()
		result = await asyncio.wait_for(
			cdp_session.cdp_client.send.Runtime.evaluate(
				params={'expression': expression, 'returnByValue': True},
				session_id=cdp_session.session_id,
			),
			timeout=self.config.action_timeout_seconds,
		)
		return result.get('result', {}).get('value')

	async def _wait_for_element(self, label: str, roles: tuple[str, ...]) -> Any:
		deadline = time.monotonic() + self.config.action_timeout_seconds
		while True:
			node = await self._find_element(label, roles)
			if node is not None:
				return node
			if time.monotonic() >= deadline:
				raise TimeoutError(f'Timed out after {self.config.action_timeout_seconds:.0f}s waiting for "{label}"')
			await asyncio.sleep(self.config.poll_interval_seconds)

	async def _find_element(self, label: str, roles: tuple[str, ...]) -> Any:
		"""Find an element by accessible name, attributes or text.

		Exact (case-insensitive) matches win over substring matches.
		"""
		state = await asyncio.wait_for(
			self.browser.get_browser_state_summary(include_screenshot=False, cached=False),
			timeout=self.config.action_timeout_seconds,
		)
		if not state.dom_state or not state.dom_state.selector_map:
			return None

		wanted = label.strip().lower()
		partial = None

		for node in state.dom_state.selector_map.values():
			if roles and _role(node) not in roles:
				continue
			names = [name.strip().lower() for name in _names(node) if name]
			if wanted in names:
				return node
			if partial is None and any(wanted in name for name in names):
				partial = node

		return partial


def _role(node: Any) -> str:
	ax_node = getattr(node, 'ax_node', None)
	role = getattr(ax_node, 'role', None) if ax_node else None
	if role:
		return str(role).lower()
	attributes = getattr(node, 'attributes', None) or {}
	return (attributes.get('role') or attributes.get('type') or getattr(node, 'tag_name', '') or '').lower()


def _names(node: Any) -> list[str]:
	names = []
	ax_node = getattr(node, 'ax_node', None)
	if ax_node and getattr(ax_node, 'name', None):
		names.append(ax_node.name)

	attributes = getattr(node, 'attributes', None) or {}
	names.extend(str(attributes[key]) for key in _LABEL_ATTRIBUTES if attributes.get(key))

	get_text = getattr(node, 'get_all_children_text', None)
	if callable(get_text):
		names.append(get_text())
	elif getattr(node, 'node_value', None):
		names.append(node.node_value)
	return names


@asynccontextmanager
async def open_portal_page(session: Session | None, config: EngineConfig) -> AsyncIterator[PortalPage]:
	"""Start a browser with the session's storage state and always stop it.

	Args:
		session: Session to impersonate, or None for a fresh (login) browser
		config: Engine configuration

	Yields:
		PortalPage bound to the new browser
	"""
	profile = BrowserProfile(
		headless=config.headless,
		disable_security=False,
		storage_state=session.storage_state if session else None,
		user_data_dir=None,
	)
	browser = BrowserSession(browser_profile=profile)

	try:
		await asyncio.wait_for(browser.start(), timeout=config.navigation_timeout_seconds)
		logger.info('Browser started successfully')
		yield PortalPage(browser, config)
	finally:
		try:
			await browser.stop()
			logger.info('Browser stopped')
		except Exception as e:
			logger.error(f'Error stopping browser: {e}')
