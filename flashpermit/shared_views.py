"""Shared data models for the FlashPermit submission engine."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from uuid_extensions import uuid7str


def utc_now() -> str:
	return datetime.now(timezone.utc).isoformat()


class InstallationType(str, Enum):
	"""HVAC installation types a permit can be filed for."""

	AC_FURNACE = 'ac-furnace'
	AC_ONLY = 'ac-only'
	FURNACE_ONLY = 'furnace-only'
	MINI_SPLIT = 'mini-split'
	CUSTOM = 'custom'


class PropertyType(str, Enum):
	RESIDENTIAL = 'residential'
	COMMERCIAL = 'commercial'


class PropertyAddress(BaseModel):
	"""Address of the property where the equipment is installed."""

	model_config = ConfigDict(extra='forbid', frozen=True)

	street_address: str = Field(description='Street line, e.g. "3825 E CAMELBACK RD"')
	city: str = Field(description='City')
	state: str = Field(description='Two-letter state code')
	zip_code: str = Field(description='ZIP code')
	parcel_number: str | None = Field(default=None, description='Assessor parcel number, if known')

	def one_line(self) -> str:
		return f'{self.street_address} {self.city} {self.state} {self.zip_code}'


class ContractorInfo(BaseModel):
	"""Contractor filing the permit."""

	model_config = ConfigDict(extra='forbid', frozen=True)

	name: str = Field(description='Registered business name')
	roc_license_number: str = Field(description='Registrar of Contractors license number')
	city_privilege_license: str | None = Field(default=None, description='City privilege (tax) license')
	phone: str | None = Field(default=None, description='Contact phone')
	email: str | None = Field(default=None, description='Contact email')


class EquipmentSpec(BaseModel):
	"""Nameplate attributes of one installed unit.

	Cooling and mini-split units use the electrical/refrigerant attributes,
	furnaces use ``fuel_type`` instead. Any attribute may be missing, in which
	case the portal field is left blank for manual completion.
	"""

	model_config = ConfigDict(extra='forbid', frozen=True)

	manufacturer: str | None = None
	model: str | None = None
	serial_number: str | None = None
	btu: int | None = None
	voltage: str | None = None
	seer: float | None = None
	refrigerant: str | None = None
	tonnage: float | None = None
	fuel_type: str | None = Field(default=None, description='Furnace fuel, e.g. "gas" or "electric"')


class PermitData(BaseModel):
	"""Immutable input to a submission run."""

	model_config = ConfigDict(extra='forbid', frozen=True)

	permit_id: str = Field(description='Caller-side permit identifier')
	installation_type: InstallationType = Field(description='Kind of HVAC installation')
	property_type: PropertyType = Field(default=PropertyType.RESIDENTIAL, description='Property classification')
	address: PropertyAddress = Field(description='Installation address')
	contractor: ContractorInfo = Field(description='Filing contractor')
	equipment: EquipmentSpec | None = Field(default=None, description='Cooling or mini-split unit')
	furnace: EquipmentSpec | None = Field(default=None, description='Furnace unit')
	valuation: Decimal = Field(gt=0, description='Declared project valuation in USD')
	equipment_photo_url: str | None = Field(default=None, description='Nameplate photo used for OCR enrichment')
	scope_description: str | None = Field(default=None, description='Free-text scope of work')

	def lookup(self, path: str) -> Any:
		"""Resolve a dotted attribute path such as ``contractor.roc_license_number``."""
		value: Any = self
		for part in path.split('.'):
			if value is None:
				return None
			value = getattr(value, part, None)
		return value


class CheckpointStatus(str, Enum):
	"""Status of a permit's portal submission."""

	PENDING = 'pending'
	IN_PROGRESS = 'in_progress'
	AWAITING_PAYMENT = 'awaiting_payment'
	SUBMITTED = 'submitted'
	FAILED = 'failed'


ACTIVE_STATUSES = frozenset({CheckpointStatus.IN_PROGRESS, CheckpointStatus.AWAITING_PAYMENT})

ALLOWED_TRANSITIONS: dict[CheckpointStatus, frozenset[CheckpointStatus]] = {
	CheckpointStatus.PENDING: frozenset({CheckpointStatus.IN_PROGRESS, CheckpointStatus.FAILED}),
	CheckpointStatus.IN_PROGRESS: frozenset(
		{
			CheckpointStatus.IN_PROGRESS,
			CheckpointStatus.AWAITING_PAYMENT,
			CheckpointStatus.SUBMITTED,
			CheckpointStatus.FAILED,
		}
	),
	CheckpointStatus.AWAITING_PAYMENT: frozenset({CheckpointStatus.IN_PROGRESS}),
	CheckpointStatus.SUBMITTED: frozenset(),
	CheckpointStatus.FAILED: frozenset(),
}


class ErrorKind(str, Enum):
	"""Closed taxonomy of automation failures."""

	SESSION_MISSING = 'session_missing'
	SESSION_EXPIRED = 'session_expired'
	CONCURRENT_SUBMISSION_IN_PROGRESS = 'concurrent_submission_in_progress'
	STEP_TIMEOUT = 'step_timeout'
	PORTAL_VALIDATION_REJECTED = 'portal_validation_rejected'
	UNKNOWN_PORTAL_STATE = 'unknown_portal_state'
	NO_ACTIVE_SUBMISSION = 'no_active_submission'
	INVALID_RESUME_STATE = 'invalid_resume_state'
	NO_AUTOMATION_PATH = 'no_automation_path'

	@property
	def is_fatal(self) -> bool:
		"""True when an unmodified retry will reliably reproduce the failure."""
		return self in (ErrorKind.SESSION_MISSING, ErrorKind.SESSION_EXPIRED, ErrorKind.UNKNOWN_PORTAL_STATE)


class Checkpoint(BaseModel):
	"""Durable record of how far a permit's submission has progressed."""

	model_config = ConfigDict(extra='forbid', populate_by_name=True)

	permit_id: str = Field(alias='permitId', description='Permit this checkpoint belongs to')
	status: CheckpointStatus = Field(default=CheckpointStatus.PENDING, description='Submission status')
	current_step: str | None = Field(default=None, alias='currentStep', description='Last fully completed step')
	state_data: dict[str, Any] = Field(default_factory=dict, alias='stateData', description='Opaque step outputs')
	error_message: str | None = Field(default=None, alias='errorMessage', description='Raw failure message')
	error_kind: ErrorKind | None = Field(default=None, alias='errorKind', description='Classified failure kind')
	attempt: int = Field(default=1, description='Submission attempt number for this permit')
	created_at: str = Field(default_factory=utc_now, alias='createdAt')
	updated_at: str = Field(default_factory=utc_now, alias='updatedAt')

	@property
	def completed_steps(self) -> list[str]:
		return list(self.state_data.get('completed_steps', []))


class _ResultBase(BaseModel):
	model_config = ConfigDict(extra='forbid')

	permit_id: str = Field(description='Permit the run was for')
	execution_id: str = Field(default_factory=uuid7str, description='Unique execution identifier')
	execution_time_ms: int | None = Field(default=None, description='Wall time of the call in milliseconds')


class CompletedResult(_ResultBase):
	"""The portal accepted the application and issued a permit number."""

	outcome: Literal['completed'] = 'completed'
	confirmation_number: str = Field(description='Portal-issued permit / confirmation number')


class AwaitingPaymentResult(_ResultBase):
	"""Submission is suspended at the payment gate. Not an error."""

	outcome: Literal['awaiting_payment'] = 'awaiting_payment'
	payment_url: str = Field(description='Where the fee must be paid')
	fee_amount: Decimal = Field(description='Fee reported by the portal in USD')


class FailedResult(_ResultBase):
	"""The run stopped on an error."""

	outcome: Literal['failed'] = 'failed'
	error_kind: ErrorKind = Field(description='Classified failure kind')
	step_name: str | None = Field(default=None, description='Step that failed, None if no step had started')
	error_message: str = Field(default='', description='Raw message for operator diagnosis')
	screenshot_path: str | None = Field(default=None, description='Full-page screenshot of the portal at the failure')


AutomationResult = Annotated[
	Union[CompletedResult, AwaitingPaymentResult, FailedResult],
	Field(discriminator='outcome'),
]

automation_result_adapter: TypeAdapter[AutomationResult] = TypeAdapter(AutomationResult)
