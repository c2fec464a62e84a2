"""Engine configuration."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = 'FLASHPERMIT_'


class EngineConfig(BaseModel):
	"""Configuration for the AutomationEngine and its collaborators."""

	model_config = ConfigDict(extra='forbid')

	portal_url: str = Field(default='https://shapephx.phoenix.gov/s/', description='Portal home page')
	headless: bool = Field(default=True, description='Run browser in headless mode')

	session_file: Path = Field(default=Path('shape-phx-session.json'), description='Persisted browser session')
	checkpoint_dir: Path = Field(default=Path('flashpermit/checkpoints'), description='Checkpoint documents')
	screenshot_dir: Path = Field(default=Path('flashpermit/screenshots'), description='Error-state screenshots')
	screenshot_on_error: bool = Field(default=True, description='Save a full-page screenshot when a run fails')

	action_timeout_seconds: float = Field(default=30.0, description='Bound on a single browser interaction')
	navigation_timeout_seconds: float = Field(default=45.0, description='Bound on page navigation and browser start')
	step_timeout_seconds: float = Field(default=180.0, description='Bound on a whole wizard step')
	poll_interval_seconds: float = Field(default=0.5, description='Element wait polling interval')

	step_timeout_retries: int = Field(default=1, ge=0, description='Local retries of a step that timed out')
	retry_delay_seconds: float = Field(default=1.0, ge=0, description='Pause before retrying a step')

	min_session_indicators: int = Field(default=2, ge=1, description='Logged-in indicators required for a valid session')
	strict_session_check: bool = Field(
		default=True, description='Fail with SessionExpired when the initial check scores below threshold'
	)

	ocr_endpoint: str | None = Field(default=None, description='OCR collaborator endpoint')
	ocr_timeout_seconds: float = Field(default=20.0, description='Bound on the OCR call')
	ocr_min_confidence: int = Field(default=60, ge=0, le=100, description='Minimum OCR confidence to use its fields')

	@classmethod
	def from_env(cls, env_file: str | None = None, **overrides) -> 'EngineConfig':
		"""Build a config from ``FLASHPERMIT_*`` environment variables.

		Args:
			env_file: Optional dotenv file to load first (``.env`` otherwise)
			**overrides: Values that win over the environment

		Returns:
			EngineConfig instance
		"""
		load_dotenv(env_file)

		values: dict = {}
		for name in cls.model_fields:
			raw = os.getenv(f'{ENV_PREFIX}{name.upper()}')
			if raw is not None and raw != '':
				values[name] = raw

		values.update(overrides)
		return cls.model_validate(values)
