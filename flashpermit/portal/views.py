"""Data models for the portal page handle."""

import re

from pydantic import BaseModel, ConfigDict, Field


class PageSnapshot(BaseModel):
	"""Read-only view of the current portal page."""

	model_config = ConfigDict(extra='forbid', frozen=True)

	url: str = Field(default='', description='Current page URL')
	text: str = Field(default='', description='Visible page text with element markup stripped')

	def contains(self, *needles: str) -> bool:
		"""True if any of the needles appears in the page text as whole words (case-insensitive).

		``'Paid'`` matches ``Status: Paid`` but not ``Unpaid``.
		"""
		return any(
			re.search(rf'(?<!\w){re.escape(needle)}(?!\w)', self.text, re.IGNORECASE) for needle in needles if needle
		)
