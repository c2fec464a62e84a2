"""SHAPE PHX wizard steps.

Phoenix's SHAPE PHX portal is a Salesforce Lightning community site. Every
residential HVAC replacement goes through the same wizard; installation types
differ only in the work item that is ticked and the units that are described.
"""

import logging

from flashpermit.errors import PaymentStillDue, UnknownPortalStateError
from flashpermit.portal.parsing import parse_fee
from flashpermit.portal.views import PageSnapshot
from flashpermit.shared_views import EquipmentSpec, InstallationType
from flashpermit.steps.registry import StepRegistry
from flashpermit.steps.views import FormStep, StepContext, StepDescriptor, StepOutcome

logger = logging.getLogger(__name__)

BUTTONS = ('button', 'link')

PERMIT_TYPE_LABEL = 'General residential construction, including custom homes'

ADDRESS_FIELDS = ('address.street_address', 'address.city', 'address.state', 'address.zip_code')

RECEIPT_MARKERS = ('Payment Received', 'Payment Successful', 'Receipt', 'Permit Issued', 'Paid')
PAYMENT_DUE_MARKERS = ('Pay Now', 'Amount Due', 'Balance Due', 'Pay Fees', 'Unpaid', 'Not Paid')


async def _next(ctx: StepContext) -> None:
	await ctx.page.click('Next', BUTTONS)
	await ctx.page.raise_for_validation_errors()


async def _select_if_present(ctx: StepContext, label: str, option: str) -> bool:
	if not await ctx.page.has_element(label):
		logger.debug(f'Optional field not shown: {label}')
		return False
	await ctx.page.select(label, option)
	return True


class StartApplicationStep(FormStep):
	"""Home page -> 'Apply For Permit' -> permit type selection."""

	async def fill(self, ctx: StepContext) -> StepOutcome:
		await ctx.page.goto(ctx.portal_url)
		await ctx.page.expect_text('Apply For Permit')
		await ctx.page.click('Apply For Permit', BUTTONS)

		await ctx.page.expect_text('Select Permit Type', 'Permit Type')
		await ctx.page.click(PERMIT_TYPE_LABEL)
		await _next(ctx)
		return StepOutcome(outputs={'permitType': PERMIT_TYPE_LABEL})


class ApplicantStep(FormStep):
	"""Applicant page: the filing contractor, looked up by ROC license."""

	async def fill(self, ctx: StepContext) -> StepOutcome:
		contractor = ctx.permit.contractor

		await ctx.page.expect_text('Applicant', 'Registered Contractor')
		await ctx.page.fill('Registered Contractor', contractor.roc_license_number)
		await ctx.page.press('ArrowDown')
		await ctx.page.press('Enter')
		await _next(ctx)
		return StepOutcome(outputs={'contractor': contractor.name, 'rocLicense': contractor.roc_license_number})


class AddressStep(FormStep):
	"""Address search: type the street, pick the matching parcel in the search results."""

	async def fill(self, ctx: StepContext) -> StepOutcome:
		address = ctx.permit.address

		await ctx.page.expect_text('Address')
		await ctx.page.fill('Address', address.street_address)
		await ctx.page.press('Enter')

		await ctx.page.expect_text('Advanced Search', address.street_address)
		await ctx.page.click(address.street_address)
		await ctx.page.click('Select', BUTTONS)
		await _next(ctx)
		return StepOutcome(outputs={'address': address.one_line()})


class PermitDetailsStep(FormStep):
	"""Classification comboboxes for a residential repair/replacement."""

	async def fill(self, ctx: StepContext) -> StepOutcome:
		await ctx.page.expect_text('Permit Work Type')
		await ctx.page.select('Permit Work Type', 'Repairs/ Replacements')
		await ctx.page.select('Permit Use Class', 'Residential')
		await ctx.page.select('Use Type', 'Single Family')
		await ctx.page.select('Land Use Type', 'Single Family')
		await _select_if_present(ctx, 'Building from Standard Plan?', 'No')
		await _next(ctx)
		return StepOutcome(outputs={'permitWorkType': 'Repairs/ Replacements'})


class ProjectDetailsStep(FormStep):
	async def fill(self, ctx: StepContext) -> StepOutcome:
		valuation = f'{ctx.permit.valuation:.2f}'

		await ctx.page.expect_text('Project Valuation', 'Project Details')
		await ctx.page.fill('Project Valuation', valuation)
		await _select_if_present(ctx, 'Plan Submission Type', 'No Plans Required')
		if ctx.permit.scope_description and await ctx.page.has_element('Scope of Work'):
			await ctx.page.fill('Scope of Work', ctx.permit.scope_description)
		await _next(ctx)
		return StepOutcome(outputs={'valuation': valuation})


class CityUseStep(FormStep):
	"""'For City Use Only' page. Only the ROC license is ours to enter."""

	async def fill(self, ctx: StepContext) -> StepOutcome:
		await ctx.page.expect_text('For City Use Only', 'ROC license')
		if await ctx.page.has_element('ROC license #'):
			await ctx.page.fill('ROC license #', ctx.permit.contractor.roc_license_number)
		await _next(ctx)
		return StepOutcome()


class WorkItemsStep(FormStep):
	"""Tick the one work item matching the installation type."""

	def __init__(self, work_item: str):
		self.work_item = work_item

	async def fill(self, ctx: StepContext) -> StepOutcome:
		await ctx.page.expect_text('Select Your Work Items', 'Work Items')
		await ctx.page.check(self.work_item)
		await _next(ctx)
		return StepOutcome(outputs={'workItem': self.work_item})


class WorkItemDetailsStep(FormStep):
	"""Describe the installed units.

	Nameplate attributes nobody knows are left blank; the portal reviewer
	completes them by hand. The page has one set of per-field inputs, so they
	carry the first unit; the other units' attributes only reach the portal
	through the description.
	"""

	FIELD_LABELS = {
		'manufacturer': 'Manufacturer',
		'model': 'Model Number',
		'serial_number': 'Serial Number',
		'btu': 'BTU',
		'seer': 'SEER',
		'voltage': 'Voltage',
		'refrigerant': 'Refrigerant',
	}

	def __init__(self, work_item: str, units: tuple[str, ...]):
		"""Initialize the WorkItemDetailsStep.

		Args:
			work_item: Work item label ticked on the previous page
			units: Which of ``equipment`` / ``furnace`` the installation has
		"""
		self.work_item = work_item
		self.units = units

	async def fill(self, ctx: StepContext) -> StepOutcome:
		specs = {unit: getattr(ctx, unit) for unit in self.units}
		description = describe_units(self.work_item, specs)

		await ctx.page.expect_text('Work Item Details', self.work_item)
		await ctx.page.fill('Cost', f'{ctx.permit.valuation:.2f}')
		await ctx.page.fill('Description', description)

		blank = []
		described_only = []
		primary = self.units[0]
		for unit, spec in specs.items():
			for name, label in self.FIELD_LABELS.items():
				value = getattr(spec, name, None) if spec else None
				if value in (None, ''):
					blank.append(f'{unit}.{name}')
				elif unit == primary and await ctx.page.has_element(label):
					await ctx.page.fill(label, str(value))
				else:
					described_only.append(f'{unit}.{name}')

		if blank:
			logger.info(f'{ctx.permit.permit_id}: leaving {len(blank)} equipment fields for manual completion')
		if described_only:
			logger.info(f'{ctx.permit.permit_id}: {", ".join(described_only)} entered in the description only')

		await _next(ctx)
		return StepOutcome(
			outputs={
				'equipmentDescription': description,
				'blankEquipmentFields': blank,
				'descriptionOnlyFields': described_only,
			}
		)


class DocumentsStep(FormStep):
	"""Documents page. Replacements need no plans, nothing is uploaded."""

	async def fill(self, ctx: StepContext) -> StepOutcome:
		snapshot = await ctx.page.expect_text('Submit Documents', 'Documents')
		if not snapshot.contains('No Plans Required'):
			logger.warning(f'{ctx.permit.permit_id}: portal may expect uploads on the documents page')
		await _next(ctx)
		return StepOutcome(outputs={'documentsUploaded': False})


class ReviewAndSubmitStep(FormStep):
	"""Submit the application. The portal answers with its fee, if any."""

	SUBMIT_LABELS = ('Submit Permit Application', 'Submit Application', 'Submit')

	async def fill(self, ctx: StepContext) -> StepOutcome:
		await ctx.page.expect_text('Review', 'Submit Permit Application')

		for label in self.SUBMIT_LABELS:
			if await ctx.page.has_element(label, BUTTONS):
				await ctx.page.click(label, BUTTONS)
				break
		else:
			raise UnknownPortalStateError('No submit button on the review page')

		await ctx.page.wait_until_settled()
		await ctx.page.raise_for_validation_errors()

		snapshot = await ctx.page.snapshot()
		fee = parse_fee(snapshot.text)
		logger.info(f'{ctx.permit.permit_id}: application submitted, fee {fee if fee is not None else "none"}')

		return StepOutcome(
			outputs={'applicationSubmitted': True},
			page_text=snapshot.text,
			page_url=snapshot.url,
			fee_amount=fee,
			payment_url=snapshot.url if fee else None,
		)


class PaymentConfirmationStep(FormStep):
	"""Confirm the fee paid outside the automation has been received."""

	async def fill(self, ctx: StepContext) -> StepOutcome:
		payment_url = ctx.state_data.get('paymentUrl')
		if not payment_url:
			return StepOutcome(outputs={'paymentRequired': False})

		await ctx.page.goto(payment_url)
		_raise_if_payment_due(await ctx.page.snapshot(), payment_url)

		snapshot = await ctx.page.expect_text(*RECEIPT_MARKERS)
		_raise_if_payment_due(snapshot, payment_url)
		return StepOutcome(outputs={'paymentConfirmed': True}, page_text=snapshot.text, page_url=snapshot.url)


def _raise_if_payment_due(snapshot: PageSnapshot, payment_url: str) -> None:
	# An outstanding-fee marker wins over any receipt text unless the balance shown is zero
	if not snapshot.contains(*PAYMENT_DUE_MARKERS):
		return
	fee = parse_fee(snapshot.text)
	if fee is None or fee > 0:
		raise PaymentStillDue(f'Portal still shows an outstanding fee at {payment_url}')


class PermitIssuedStep(FormStep):
	async def fill(self, ctx: StepContext) -> StepOutcome:
		snapshot = await ctx.page.expect_text('Permit', 'Confirmation')
		return StepOutcome(page_text=snapshot.text, page_url=snapshot.url)


def describe_units(work_item: str, specs: dict[str, EquipmentSpec | None]) -> str:
	"""One-line description of the installed units, e.g.
	``Replace Air Conditioner: Carrier 24ACC636, 36000 BTU, SEER 16.0, R-410A``.
	"""
	parts = []
	for unit, spec in specs.items():
		if spec is None:
			continue
		details = [' '.join(v for v in (spec.manufacturer, spec.model) if v)]
		if spec.tonnage:
			details.append(f'{spec.tonnage:g} ton')
		if spec.btu:
			details.append(f'{spec.btu} BTU')
		if spec.seer:
			details.append(f'SEER {spec.seer}')
		if spec.refrigerant:
			details.append(spec.refrigerant)
		if spec.voltage:
			details.append(spec.voltage if spec.voltage.upper().endswith('V') else f'{spec.voltage}V')
		if spec.fuel_type:
			details.append(f'{spec.fuel_type} {unit}')
		if spec.serial_number:
			details.append(f'S/N {spec.serial_number}')
		details = [d for d in details if d]
		if details:
			parts.append(', '.join(details))

	if not parts:
		return work_item
	return f'{work_item}: ' + '; '.join(parts)


WORK_ITEMS: dict[InstallationType, tuple[str, tuple[str, ...]]] = {
	InstallationType.AC_ONLY: ('Replace Air Conditioner', ('equipment',)),
	InstallationType.FURNACE_ONLY: ('Replace Furnace', ('furnace',)),
	InstallationType.MINI_SPLIT: ('Install Mini-Split System', ('equipment',)),
	InstallationType.AC_FURNACE: ('Replace Furnace or Air Conditioner', ('equipment', 'furnace')),
}


def shape_phx_steps(work_item: str, units: tuple[str, ...]) -> list[StepDescriptor]:
	"""The SHAPE PHX wizard for one work item.

	Args:
		work_item: Work item checkbox label
		units: Equipment units described on the details page

	Returns:
		Ordered step descriptors
	"""
	return [
		StepDescriptor(name='start_application', title='Select Permit Type', action=StartApplicationStep()),
		StepDescriptor(
			name='applicant',
			title='Applicant',
			required_fields=('contractor.name', 'contractor.roc_license_number'),
			action=ApplicantStep(),
		),
		StepDescriptor(name='address', title='Address', required_fields=ADDRESS_FIELDS, action=AddressStep()),
		StepDescriptor(name='permit_details', title='Permit Details', action=PermitDetailsStep()),
		StepDescriptor(
			name='project_details',
			title='Project Details',
			required_fields=('valuation',),
			action=ProjectDetailsStep(),
		),
		StepDescriptor(name='city_use', title='For City Use Only', action=CityUseStep()),
		StepDescriptor(name='work_items', title='Select Your Work Items', action=WorkItemsStep(work_item)),
		StepDescriptor(
			name='work_item_details',
			title='Work Item Details',
			action=WorkItemDetailsStep(work_item, units),
			uses_equipment_data=True,
		),
		StepDescriptor(name='documents', title='Submit Documents', action=DocumentsStep()),
		StepDescriptor(
			name='review_and_submit',
			title='Review and Submit',
			action=ReviewAndSubmitStep(),
			is_payment_gate=True,
		),
		StepDescriptor(name='payment_confirmation', title='Payment', action=PaymentConfirmationStep()),
		StepDescriptor(name='permit_issued', title='Permit Issued', action=PermitIssuedStep(), is_final=True),
	]


def build_default_registry() -> StepRegistry:
	"""Registry with the SHAPE PHX wizard for every automatable installation type."""
	registry = StepRegistry()
	for installation_type, (work_item, units) in WORK_ITEMS.items():
		registry.register(installation_type, shape_phx_steps(work_item, units))
	return registry
