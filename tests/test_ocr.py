"""Tests for the OCR client and EquipmentReading."""

import json

import httpx
import pytest

from flashpermit.ocr.service import OcrClient
from flashpermit.ocr.views import EquipmentReading

ENDPOINT = 'https://ocr.example.com/api/ocr'
PHOTO = 'https://storage.example.com/nameplates/permit-001.jpg'


def client_for(handler):
	return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_extract_equipment_data():
	requests = []

	def handler(request):
		requests.append(request)
		return httpx.Response(
			200,
			json={
				'success': True,
				'data': {
					'manufacturer': 'Goodman',
					'model': 'GSX140361',
					'serialNumber': '2109123456',
					'btu': 36000,
					'voltage': '208/230',
					'seer': 14,
					'refrigerant': 'R-410A',
					'confidence': 88,
					'rawText': 'GOODMAN MFG...',
				},
			},
		)

	async with client_for(handler) as http:
		reading = await OcrClient(ENDPOINT, client=http).extract_equipment_data(PHOTO)

	assert requests[0].method == 'POST'
	assert str(requests[0].url) == ENDPOINT
	assert json.loads(requests[0].content) == {'imageUrl': PHOTO}
	assert reading.manufacturer == 'Goodman'
	assert reading.serial_number == '2109123456'
	assert reading.confidence == 88


async def test_service_failure_raises():
	def handler(request):
		return httpx.Response(200, json={'success': False, 'error': 'No text detected'})

	async with client_for(handler) as http:
		with pytest.raises(ValueError, match='No text detected'):
			await OcrClient(ENDPOINT, client=http).extract_equipment_data(PHOTO)


async def test_http_error_raises():
	def handler(request):
		return httpx.Response(503)

	async with client_for(handler) as http:
		with pytest.raises(httpx.HTTPStatusError):
			await OcrClient(ENDPOINT, client=http).extract_equipment_data(PHOTO)


class TestUsable:
	def test_confident_reading(self):
		reading = EquipmentReading(manufacturer='Lennox', model='', btu=24000, confidence=75)

		assert reading.usable(60) == {'manufacturer': 'Lennox', 'btu': 24000}

	def test_low_confidence_contributes_nothing(self):
		reading = EquipmentReading(manufacturer='Lennox', confidence=59)

		assert reading.usable(60) == {}

	def test_threshold_is_inclusive(self):
		assert EquipmentReading(model='ML14XC1', confidence=60).usable(60) == {'model': 'ML14XC1'}
