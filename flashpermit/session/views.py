"""Data models for the SessionStore."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from flashpermit.shared_views import utc_now


class Session(BaseModel):
	"""Persisted browser authentication state."""

	model_config = ConfigDict(extra='forbid')

	storage_state: dict[str, Any] = Field(description='Cookies and origin storage in storage-state format')
	saved_at: str = Field(default_factory=utc_now, description='ISO timestamp of when the state was saved')

	@property
	def cookie_count(self) -> int:
		return len(self.storage_state.get('cookies') or [])


class SessionCheck(BaseModel):
	"""Outcome of scoring a session against logged-in indicators."""

	model_config = ConfigDict(extra='forbid')

	score: int = Field(description='Number of indicators present')
	min_score: int = Field(description='Threshold the score was compared against')
	indicators: dict[str, bool] = Field(default_factory=dict, description='Indicator name to presence')
	login_required: bool = Field(default=False, description='The page is the portal login page')

	@property
	def valid(self) -> bool:
		return not self.login_required and self.score >= self.min_score
