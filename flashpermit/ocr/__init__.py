"""OCR collaborator client."""

from flashpermit.ocr.service import EquipmentExtractor, OcrClient
from flashpermit.ocr.views import EquipmentReading

__all__ = ['OcrClient', 'EquipmentExtractor', 'EquipmentReading']
