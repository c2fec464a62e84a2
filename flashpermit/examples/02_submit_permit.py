"""Submit an HVAC permit to SHAPE PHX.

Runs the full wizard for an ac-only replacement. The run either completes
with a permit number, stops at the payment gate (pay the fee on the portal,
then run 03_resume_after_payment.py), or fails with a classified error.
"""

import asyncio
import logging
from decimal import Decimal

from dotenv import load_dotenv

from flashpermit.config import EngineConfig
from flashpermit.engine.service import AutomationEngine
from flashpermit.shared_views import (
	AwaitingPaymentResult,
	CompletedResult,
	ContractorInfo,
	EquipmentSpec,
	InstallationType,
	PermitData,
	PropertyAddress,
)

# Setup
load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def example_permit() -> PermitData:
	"""Example permit data (adjust to a real job before running)."""
	return PermitData(
		permit_id='demo-ac-0001',
		installation_type=InstallationType.AC_ONLY,
		address=PropertyAddress(
			street_address='3825 E CAMELBACK RD',
			city='Phoenix',
			state='AZ',
			zip_code='85018',
		),
		contractor=ContractorInfo(
			name='Desert Air Mechanical LLC',
			roc_license_number='ROC123456',
			phone='602-555-0134',
		),
		equipment=EquipmentSpec(
			manufacturer='Carrier',
			model='24ACC636A003',
			btu=36000,
			seer=16.0,
			refrigerant='R-410A',
			tonnage=3.0,
		),
		valuation=Decimal('8500.00'),
	)


async def main():
	"""Main entry point."""
	config = EngineConfig.from_env()
	engine = AutomationEngine(config)
	permit = example_permit()

	logger.info(f'=== SUBMITTING PERMIT: {permit.permit_id} ===')
	result = await engine.run(permit)

	if isinstance(result, CompletedResult):
		logger.info(f'✓ Permit issued: {result.confirmation_number}')
	elif isinstance(result, AwaitingPaymentResult):
		logger.info(f'Fee of ${result.fee_amount} due, pay at {result.payment_url}')
		logger.info('Then run 03_resume_after_payment.py')
	else:
		logger.error(f'✗ Failed at {result.step_name} ({result.error_kind.value}): {result.error_message}')
		if result.error_kind.is_fatal:
			logger.error('This will fail again until the cause is fixed (re-login or check the portal)')

	logger.info(f'Took {result.execution_time_ms}ms')


if __name__ == '__main__':
	asyncio.run(main())
