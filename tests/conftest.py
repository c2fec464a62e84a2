"""Shared fixtures: fake portal page, fake browser factory, fake OCR and permit data."""

import asyncio
import json
from contextlib import asynccontextmanager
from decimal import Decimal

import pytest

from flashpermit.checkpoint.service import CheckpointStore
from flashpermit.config import EngineConfig
from flashpermit.errors import PortalValidationError
from flashpermit.ocr.views import EquipmentReading
from flashpermit.portal.views import PageSnapshot
from flashpermit.session.service import SessionStore
from flashpermit.shared_views import PermitData

PORTAL_URL = 'https://shapephx.phoenix.gov/s/'
LOGIN_URL = 'https://shapephx.phoenix.gov/s/login/?startURL=%2Fs%2F'
LOGGED_IN_TEXT = 'Home\nMy Account\nLogout\nApply For Permit'

COOKIES = [
	{'name': 'sid', 'value': 'session-cookie', 'domain': 'shapephx.phoenix.gov', 'path': '/'},
	{'name': 'oid', 'value': 'org-cookie', 'domain': 'shapephx.phoenix.gov', 'path': '/'},
	{'name': 'BrowserId', 'value': 'browser-cookie', 'domain': '.phoenix.gov', 'path': '/'},
]


class FakePortalPage:
	"""Stands in for PortalPage and records every interaction."""

	def __init__(self, url=PORTAL_URL, text=LOGGED_IN_TEXT, missing=(), validation_error=None):
		self.url = url
		self.text = text
		self.missing = set(missing)
		self.validation_error = validation_error
		self.cookies = [*COOKIES, {'name': 'refreshed', 'value': '1', 'domain': 'shapephx.phoenix.gov', 'path': '/'}]
		self.screenshot_error = None
		self.actions = []

	async def goto(self, url):
		self.actions.append(('goto', url))

	async def snapshot(self):
		return PageSnapshot(url=self.url, text=self.text)

	async def wait_until_settled(self, max_wait_seconds=None):
		pass

	async def expect_text(self, *markers):
		self.actions.append(('expect_text', markers))
		return await self.snapshot()

	async def click(self, label, roles=()):
		self.actions.append(('click', label))

	async def fill(self, label, value):
		self.actions.append(('fill', label, value))

	async def select(self, label, option):
		self.actions.append(('select', label, option))

	async def check(self, label):
		self.actions.append(('check', label))

	async def press(self, keys):
		self.actions.append(('press', keys))

	async def has_element(self, label, roles=()):
		return label not in self.missing

	async def raise_for_validation_errors(self):
		if self.validation_error:
			raise PortalValidationError(self.validation_error)

	async def storage_state(self):
		return {'cookies': self.cookies, 'origins': []}

	async def screenshot(self, path):
		self.actions.append(('screenshot', path))
		if self.screenshot_error:
			raise self.screenshot_error
		path.parent.mkdir(parents=True, exist_ok=True)
		path.write_bytes(b'\x89PNG fake')
		return path

	def filled(self) -> dict:
		return {action[1]: action[2] for action in self.actions if action[0] == 'fill'}


class FakeBrowser:
	"""Page factory that hands out the same fake page and counts open/close."""

	def __init__(self, page=None):
		self.page = page or FakePortalPage()
		self.opened = 0
		self.closed = 0
		self.sessions = []

	@asynccontextmanager
	async def __call__(self, session, config):
		self.opened += 1
		self.sessions.append(session)
		try:
			yield self.page
		finally:
			self.closed += 1


class FakeOcr:
	def __init__(self, reading=None, error=None, delay=0.0):
		self.reading = reading or EquipmentReading()
		self.error = error
		self.delay = delay
		self.calls = []

	async def extract_equipment_data(self, photo_url):
		self.calls.append(photo_url)
		if self.delay:
			await asyncio.sleep(self.delay)
		if self.error:
			raise self.error
		return self.reading


def make_permit(**overrides) -> PermitData:
	data = {
		'permit_id': 'permit-001',
		'installation_type': 'ac-only',
		'address': {
			'street_address': '3825 E CAMELBACK RD',
			'city': 'Phoenix',
			'state': 'AZ',
			'zip_code': '85018',
		},
		'contractor': {
			'name': 'Desert Air Mechanical LLC',
			'roc_license_number': 'ROC123456',
			'phone': '602-555-0134',
		},
		'equipment': {
			'manufacturer': 'Carrier',
			'model': '24ACC636A003',
			'btu': 36000,
			'seer': 16.0,
			'refrigerant': 'R-410A',
			'tonnage': 3.0,
		},
		'valuation': Decimal('8500.00'),
	}
	data.update(overrides)
	return PermitData.model_validate(data)


@pytest.fixture
def config(tmp_path):
	return EngineConfig(
		session_file=tmp_path / 'shape-phx-session.json',
		checkpoint_dir=tmp_path / 'checkpoints',
		screenshot_dir=tmp_path / 'screenshots',
		step_timeout_seconds=5,
		action_timeout_seconds=1,
		poll_interval_seconds=0.01,
		retry_delay_seconds=0,
		ocr_timeout_seconds=0.5,
	)


@pytest.fixture
def saved_session(config):
	config.session_file.write_text(
		json.dumps({'cookies': COOKIES, 'origins': [], 'saved_at': '2026-10-01T12:00:00+00:00'})
	)
	return config.session_file


@pytest.fixture
def session_store(config):
	return SessionStore(config.session_file, min_indicators=config.min_session_indicators)


@pytest.fixture
def checkpoint_store(config):
	return CheckpointStore(config.checkpoint_dir)


@pytest.fixture
def fake_page():
	return FakePortalPage()


@pytest.fixture
def fake_browser(fake_page):
	return FakeBrowser(fake_page)


@pytest.fixture
def permit():
	return make_permit()


@pytest.fixture
def permit_factory():
	return make_permit


@pytest.fixture
def fake_ocr():
	return FakeOcr()
