"""Data models for the OCR collaborator."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

EQUIPMENT_FIELDS = ('manufacturer', 'model', 'serial_number', 'btu', 'voltage', 'seer', 'refrigerant')


class EquipmentReading(BaseModel):
	"""Equipment attributes extracted from a nameplate photo."""

	model_config = ConfigDict(extra='ignore', populate_by_name=True)

	manufacturer: str | None = None
	model: str | None = None
	serial_number: str | None = Field(default=None, alias='serialNumber')
	btu: int | None = None
	voltage: str | None = None
	seer: float | None = None
	refrigerant: str | None = None
	confidence: int = Field(default=0, ge=0, le=100, description='Overall extraction confidence, 0-100')

	def usable(self, min_confidence: int) -> dict[str, Any]:
		"""Fields that may be used to fill blanks in the permit data.

		A reading below ``min_confidence`` contributes nothing; those portal
		fields stay blank for manual completion.
		"""
		if self.confidence < min_confidence:
			return {}
		return {name: getattr(self, name) for name in EQUIPMENT_FIELDS if getattr(self, name) not in (None, '')}
