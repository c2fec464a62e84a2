"""Data models for wizard steps."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from flashpermit.shared_views import EquipmentSpec, PermitData


class StepContext(BaseModel):
	"""Everything a step's fill action may use.

	``page`` is the run's own browser handle. ``state_data`` is a read-only copy
	of the checkpoint's state at the time the step starts.
	"""

	model_config = ConfigDict(extra='forbid', arbitrary_types_allowed=True)

	permit: PermitData
	page: Any = Field(description='PortalPage for this run')
	state_data: dict[str, Any] = Field(default_factory=dict)
	equipment: EquipmentSpec | None = Field(default=None, description='Cooling unit with OCR blanks filled')
	furnace: EquipmentSpec | None = Field(default=None, description='Furnace unit with OCR blanks filled')
	portal_url: str = ''


class StepOutcome(BaseModel):
	"""What a successfully filled step reports back."""

	model_config = ConfigDict(extra='forbid')

	outputs: dict[str, Any] = Field(default_factory=dict, description='Merged into checkpoint state_data')
	page_text: str = Field(default='', description='Page text after the step, used by the final step')
	page_url: str = Field(default='', description='Page URL after the step')
	fee_amount: Decimal | None = Field(default=None, description='Fee the portal reported, payment gate only')
	payment_url: str | None = Field(default=None, description='Where the fee can be paid, payment gate only')


class FormStep:
	"""Fill logic for one wizard page.

	Subclasses implement :meth:`fill`; the engine never branches on which
	step or installation type it is running.
	"""

	async def fill(self, ctx: StepContext) -> StepOutcome:
		raise NotImplementedError


class StepDescriptor(BaseModel):
	"""One wizard step: its name, inputs, fill action and flags."""

	model_config = ConfigDict(extra='forbid', frozen=True, arbitrary_types_allowed=True)

	name: str = Field(description='Stable step identifier, recorded in checkpoints')
	title: str = Field(default='', description='Portal heading for the step')
	required_fields: tuple[str, ...] = Field(default=(), description='Dotted PermitData paths that must be set')
	action: FormStep = Field(description='Fill logic')
	is_payment_gate: bool = Field(default=False, description='Portal may ask for payment after this step')
	is_final: bool = Field(default=False, description='Page after this step carries the confirmation number')
	uses_equipment_data: bool = Field(default=False, description='Consult OCR to fill equipment blanks')
