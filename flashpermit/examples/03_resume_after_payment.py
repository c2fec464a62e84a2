"""Resume a submission after the permit fee has been paid.

Continues from the step after the payment gate; steps already submitted to
the portal are never repeated. Also shows the checkpoint as the status
poller sees it.
"""

import asyncio
import importlib
import json
import logging

from dotenv import load_dotenv

from flashpermit.checkpoint.service import CheckpointStore
from flashpermit.config import EngineConfig
from flashpermit.engine.service import AutomationEngine
from flashpermit.shared_views import CheckpointStatus

# Setup
load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Module names starting with a digit cannot be imported with an import statement
example_permit = importlib.import_module('02_submit_permit').example_permit


async def main():
	"""Main entry point."""
	config = EngineConfig.from_env()
	checkpoints = CheckpointStore(config.checkpoint_dir)

	waiting = checkpoints.list_checkpoints(status=CheckpointStatus.AWAITING_PAYMENT)
	logger.info(f'{len(waiting)} submissions awaiting payment')
	for checkpoint in waiting:
		logger.info(
			f'  {checkpoint.permit_id}: ${checkpoint.state_data.get("feeAmount")} at {checkpoint.state_data.get("paymentUrl")}'
		)

	permit = example_permit()
	engine = AutomationEngine(config, checkpoint_store=checkpoints)

	logger.info(f'=== RESUMING PERMIT: {permit.permit_id} ===')
	result = await engine.resume(permit)
	logger.info(json.dumps(result.model_dump(mode='json'), indent=2))

	checkpoint = checkpoints.get(permit.permit_id)
	if checkpoint is not None:
		logger.info(json.dumps(checkpoint.model_dump(mode='json', by_alias=True), indent=2))


if __name__ == '__main__':
	asyncio.run(main())
