"""Tests for the SHAPE PHX form steps against a fake portal page."""

from decimal import Decimal

import pytest

from flashpermit.engine.service import AutomationEngine
from flashpermit.errors import PaymentStillDue, PortalValidationError, UnknownPortalStateError
from flashpermit.shared_views import AwaitingPaymentResult, CompletedResult, EquipmentSpec
from flashpermit.steps.shape_phx import (
	AddressStep,
	ApplicantStep,
	DocumentsStep,
	PaymentConfirmationStep,
	PermitDetailsStep,
	ProjectDetailsStep,
	ReviewAndSubmitStep,
	StartApplicationStep,
	WorkItemDetailsStep,
	WorkItemsStep,
	build_default_registry,
	describe_units,
)
from flashpermit.steps.views import StepContext

PORTAL_URL = 'https://shapephx.phoenix.gov/s/'


@pytest.fixture
def make_ctx(fake_page, permit):
	def _make(permit=permit, state_data=None, equipment=None, furnace=None):
		return StepContext(
			permit=permit,
			page=fake_page,
			state_data=state_data or {},
			equipment=equipment if equipment is not None else permit.equipment,
			furnace=furnace if furnace is not None else permit.furnace,
			portal_url=PORTAL_URL,
		)

	return _make


async def test_start_application(make_ctx, fake_page):
	outcome = await StartApplicationStep().fill(make_ctx())

	assert fake_page.actions[0] == ('goto', PORTAL_URL)
	assert ('click', 'Apply For Permit') in fake_page.actions
	assert ('click', 'General residential construction, including custom homes') in fake_page.actions
	assert fake_page.actions[-1] == ('click', 'Next')
	assert outcome.outputs['permitType'].startswith('General residential')


async def test_applicant_uses_roc_license(make_ctx, fake_page):
	outcome = await ApplicantStep().fill(make_ctx())

	assert fake_page.filled()['Registered Contractor'] == 'ROC123456'
	assert ('press', 'Enter') in fake_page.actions
	assert outcome.outputs['rocLicense'] == 'ROC123456'


async def test_address_search_selects_result(make_ctx, fake_page):
	outcome = await AddressStep().fill(make_ctx())

	assert fake_page.filled()['Address'] == '3825 E CAMELBACK RD'
	clicks = [a[1] for a in fake_page.actions if a[0] == 'click']
	assert clicks == ['3825 E CAMELBACK RD', 'Select', 'Next']
	assert outcome.outputs['address'] == '3825 E CAMELBACK RD Phoenix AZ 85018'


async def test_permit_details_skips_absent_optional_field(make_ctx, fake_page):
	fake_page.missing = {'Building from Standard Plan?'}

	await PermitDetailsStep().fill(make_ctx())

	selects = {a[1]: a[2] for a in fake_page.actions if a[0] == 'select'}
	assert selects == {
		'Permit Work Type': 'Repairs/ Replacements',
		'Permit Use Class': 'Residential',
		'Use Type': 'Single Family',
		'Land Use Type': 'Single Family',
	}


async def test_project_details_fills_valuation(make_ctx, fake_page, permit_factory):
	permit = permit_factory(valuation=Decimal('12450.5'), scope_description='Replace 3 ton condenser')

	outcome = await ProjectDetailsStep().fill(make_ctx(permit=permit))

	assert fake_page.filled()['Project Valuation'] == '12450.50'
	assert fake_page.filled()['Scope of Work'] == 'Replace 3 ton condenser'
	assert ('select', 'Plan Submission Type', 'No Plans Required') in fake_page.actions
	assert outcome.outputs == {'valuation': '12450.50'}


async def test_validation_error_surfaces_after_next(make_ctx, fake_page):
	fake_page.validation_error = 'Project Valuation: Complete this field.'

	with pytest.raises(PortalValidationError, match='Complete this field'):
		await ProjectDetailsStep().fill(make_ctx())


async def test_work_items_checks_type_label(make_ctx, fake_page):
	outcome = await WorkItemsStep('Replace Furnace').fill(make_ctx())

	assert ('check', 'Replace Furnace') in fake_page.actions
	assert outcome.outputs == {'workItem': 'Replace Furnace'}


class TestWorkItemDetails:
	async def test_describes_known_equipment(self, make_ctx, fake_page):
		outcome = await WorkItemDetailsStep('Replace Air Conditioner', ('equipment',)).fill(make_ctx())

		filled = fake_page.filled()
		assert filled['Cost'] == '8500.00'
		assert filled['Description'] == (
			'Replace Air Conditioner: Carrier 24ACC636A003, 3 ton, 36000 BTU, SEER 16.0, R-410A'
		)
		assert filled['Manufacturer'] == 'Carrier'
		assert filled['Refrigerant'] == 'R-410A'
		assert 'Serial Number' not in filled
		assert outcome.outputs['blankEquipmentFields'] == ['equipment.serial_number', 'equipment.voltage']
		assert outcome.outputs['descriptionOnlyFields'] == []

	async def test_unknown_attributes_left_blank(self, make_ctx, fake_page, permit_factory):
		permit = permit_factory(equipment=None)

		outcome = await WorkItemDetailsStep('Install Mini-Split System', ('equipment',)).fill(make_ctx(permit=permit))

		filled = fake_page.filled()
		assert filled['Description'] == 'Install Mini-Split System'
		assert set(filled) == {'Cost', 'Description'}
		assert len(outcome.outputs['blankEquipmentFields']) == 7

	async def test_uses_enriched_equipment_from_context(self, make_ctx, fake_page, permit_factory):
		permit = permit_factory(equipment={'model': 'GSX140361'})
		enriched = EquipmentSpec(manufacturer='Goodman', model='GSX140361', serial_number='2109123456')

		await WorkItemDetailsStep('Replace Air Conditioner', ('equipment',)).fill(
			make_ctx(permit=permit, equipment=enriched)
		)

		assert fake_page.filled()['Serial Number'] == '2109123456'
		assert fake_page.filled()['Manufacturer'] == 'Goodman'

	async def test_voltage_reaches_the_portal(self, make_ctx, fake_page, permit_factory):
		permit = permit_factory(equipment={'manufacturer': 'Daikin', 'model': 'FTX18', 'voltage': '208/230'})

		await WorkItemDetailsStep('Install Mini-Split System', ('equipment',)).fill(make_ctx(permit=permit))

		filled = fake_page.filled()
		assert filled['Voltage'] == '208/230'
		assert filled['Description'] == 'Install Mini-Split System: Daikin FTX18, 208/230V'

	async def test_second_unit_recorded_as_description_only(self, make_ctx, fake_page, permit_factory):
		permit = permit_factory(
			installation_type='ac-furnace',
			equipment={'manufacturer': 'Trane', 'model': '4TTR4036'},
			furnace={'manufacturer': 'Trane', 'model': 'S9V2B080', 'fuel_type': 'gas'},
		)

		outcome = await WorkItemDetailsStep('Replace Furnace or Air Conditioner', ('equipment', 'furnace')).fill(
			make_ctx(permit=permit)
		)

		filled = fake_page.filled()
		assert filled['Model Number'] == '4TTR4036'
		assert 'S9V2B080' in filled['Description']
		assert outcome.outputs['descriptionOnlyFields'] == ['furnace.manufacturer', 'furnace.model']
		assert 'furnace.serial_number' in outcome.outputs['blankEquipmentFields']
		assert 'equipment.voltage' in outcome.outputs['blankEquipmentFields']


def test_describe_units_with_furnace():
	description = describe_units(
		'Replace Furnace or Air Conditioner',
		{
			'equipment': EquipmentSpec(manufacturer='Trane', model='4TTR4036', tonnage=3),
			'furnace': EquipmentSpec(manufacturer='Trane', model='S9V2B080', fuel_type='gas'),
		},
	)

	assert description == 'Replace Furnace or Air Conditioner: Trane 4TTR4036, 3 ton; Trane S9V2B080, gas furnace'


async def test_documents_step(make_ctx, fake_page):
	fake_page.text = 'Submit Documents\nNo Plans Required'

	outcome = await DocumentsStep().fill(make_ctx())

	assert fake_page.actions[-1] == ('click', 'Next')
	assert outcome.outputs == {'documentsUploaded': False}


class TestReviewAndSubmit:
	async def test_reports_fee(self, make_ctx, fake_page):
		fake_page.url = 'https://shapephx.phoenix.gov/s/application-fees?recordId=a0B5f000001'
		fake_page.text = 'Application Submitted\nFees\nTotal Fee: $127.50\nPay Now'

		outcome = await ReviewAndSubmitStep().fill(make_ctx())

		assert ('click', 'Submit Permit Application') in fake_page.actions
		assert outcome.fee_amount == Decimal('127.50')
		assert outcome.payment_url == fake_page.url

	async def test_no_fee(self, make_ctx, fake_page):
		fake_page.text = 'Application Submitted'

		outcome = await ReviewAndSubmitStep().fill(make_ctx())

		assert outcome.fee_amount is None
		assert outcome.payment_url is None

	async def test_falls_back_to_generic_submit_label(self, make_ctx, fake_page):
		fake_page.missing = {'Submit Permit Application', 'Submit Application'}

		await ReviewAndSubmitStep().fill(make_ctx())

		assert ('click', 'Submit') in fake_page.actions

	async def test_no_submit_button(self, make_ctx, fake_page):
		fake_page.missing = set(ReviewAndSubmitStep.SUBMIT_LABELS)

		with pytest.raises(UnknownPortalStateError):
			await ReviewAndSubmitStep().fill(make_ctx())


class TestPaymentConfirmation:
	async def test_no_payment_required(self, make_ctx, fake_page):
		outcome = await PaymentConfirmationStep().fill(make_ctx())

		assert outcome.outputs == {'paymentRequired': False}
		assert fake_page.actions == []

	async def test_payment_received(self, make_ctx, fake_page):
		fake_page.text = 'Payment Received\nReceipt #R-88812'
		ctx = make_ctx(state_data={'paymentUrl': 'https://shapephx.phoenix.gov/s/pay?id=1'})

		outcome = await PaymentConfirmationStep().fill(ctx)

		assert fake_page.actions[0] == ('goto', 'https://shapephx.phoenix.gov/s/pay?id=1')
		assert outcome.outputs == {'paymentConfirmed': True}

	async def test_payment_still_due(self, make_ctx, fake_page):
		fake_page.text = 'Amount Due: $127.50\nPay Now'
		ctx = make_ctx(state_data={'paymentUrl': 'https://shapephx.phoenix.gov/s/pay?id=1'})

		with pytest.raises(PaymentStillDue):
			await PaymentConfirmationStep().fill(ctx)

	@pytest.mark.parametrize(
		'text',
		[
			'Application Number: PHX-2026-000001\nAmount Due: $127.50\nStatus: Unpaid\nPay Now',
			'Application Number: PHX-2026-000001\nStatus: Unpaid',
			'Payment Received\nBalance Due: $127.50',
		],
		ids=['unpaid-with-amount', 'unpaid-status-only', 'receipt-with-balance'],
	)
	async def test_outstanding_fee_wins_over_receipt_text(self, make_ctx, fake_page, text):
		fake_page.text = text
		ctx = make_ctx(state_data={'paymentUrl': 'https://shapephx.phoenix.gov/s/pay?id=1'})

		with pytest.raises(PaymentStillDue):
			await PaymentConfirmationStep().fill(ctx)

	async def test_zero_balance_is_paid(self, make_ctx, fake_page):
		fake_page.text = 'Status: Paid\nBalance Due: $0.00'
		ctx = make_ctx(state_data={'paymentUrl': 'https://shapephx.phoenix.gov/s/pay?id=1'})

		outcome = await PaymentConfirmationStep().fill(ctx)

		assert outcome.outputs == {'paymentConfirmed': True}


class TestFullWizard:
	@pytest.fixture
	def engine(self, config, session_store, checkpoint_store, fake_browser, saved_session):
		return AutomationEngine(
			config=config,
			registry=build_default_registry(),
			session_store=session_store,
			checkpoint_store=checkpoint_store,
			page_factory=fake_browser,
		)

	async def test_ac_only_without_fee(self, engine, permit, fake_page):
		fake_page.text = 'My Account\nLogout\nApply For Permit\nPermit Issued\nPermit #AB1234'

		result = await engine.run(permit)

		assert isinstance(result, CompletedResult)
		assert result.confirmation_number == 'AB1234'
		assert ('check', 'Replace Air Conditioner') in fake_page.actions

	async def test_fee_then_resume(self, engine, permit, fake_page, checkpoint_store):
		fake_page.text = 'My Account\nLogout\nTotal Fee: $127.50\nPay Now'

		result = await engine.run(permit)

		assert isinstance(result, AwaitingPaymentResult)
		assert result.fee_amount == Decimal('127.50')
		assert result.payment_url

		fake_page.actions.clear()
		fake_page.text = 'My Account\nLogout\nPayment Received\nPermit #PHX-2026-004512 issued'

		result = await engine.resume(permit)

		assert isinstance(result, CompletedResult)
		assert result.confirmation_number == 'PHX-2026-004512'
		assert ('click', 'Submit Permit Application') not in fake_page.actions
		assert checkpoint_store.get(permit.permit_id).status.value == 'submitted'

	async def test_unpaid_fee_is_never_reported_as_issued(self, engine, permit, fake_page, checkpoint_store):
		fake_page.text = 'My Account\nLogout\nTotal Fee: $127.50\nPay Now'
		await engine.run(permit)
		fake_page.text = (
			'My Account\nLogout\nApplication Number: PHX-2026-000001\nAmount Due: $127.50\nStatus: Unpaid\nPay Now'
		)

		result = await engine.resume(permit)

		assert isinstance(result, AwaitingPaymentResult)
		assert result.fee_amount == Decimal('127.50')
		checkpoint = checkpoint_store.get(permit.permit_id)
		assert checkpoint.status.value == 'awaiting_payment'
		assert 'confirmationNumber' not in checkpoint.state_data
