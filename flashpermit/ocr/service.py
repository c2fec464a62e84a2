"""OCR client - best-effort nameplate extraction through the OCR service."""

import logging
from typing import Protocol

import httpx

from flashpermit.ocr.views import EquipmentReading

logger = logging.getLogger(__name__)


class EquipmentExtractor(Protocol):
	async def extract_equipment_data(self, photo_url: str) -> EquipmentReading: ...


class OcrClient:
	"""Calls the OCR service's ``POST {imageUrl}`` endpoint.

	The service answers ``{"success": true, "data": {...}}``. Errors are raised
	to the caller, which treats OCR as optional enrichment.
	"""

	def __init__(self, endpoint: str, timeout_seconds: float = 20.0, client: httpx.AsyncClient | None = None):
		"""Initialize the OcrClient.

		Args:
			endpoint: Full URL of the OCR endpoint
			timeout_seconds: Request timeout
			client: Optional shared httpx client
		"""
		self.endpoint = endpoint
		self.timeout_seconds = timeout_seconds
		self._client = client

	async def extract_equipment_data(self, photo_url: str) -> EquipmentReading:
		"""Extract equipment attributes from a nameplate photo.

		Args:
			photo_url: Publicly reachable photo URL

		Returns:
			EquipmentReading

		Raises:
			httpx.HTTPError: On transport failures or non-2xx responses
			ValueError: If the service reports failure
		"""
		logger.info(f'Requesting OCR for {photo_url}')

		if self._client is not None:
			response = await self._client.post(self.endpoint, json={'imageUrl': photo_url}, timeout=self.timeout_seconds)
		else:
			async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
				response = await client.post(self.endpoint, json={'imageUrl': photo_url})

		response.raise_for_status()
		body = response.json()

		if not body.get('success', False):
			raise ValueError(f'OCR service error: {body.get("error", "unknown error")}')

		reading = EquipmentReading.model_validate(body.get('data') or {})
		logger.info(f'OCR confidence {reading.confidence}% for {photo_url}')
		return reading
