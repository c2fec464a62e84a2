"""Automation engine - drives the portal wizard for one permit at a time."""

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from flashpermit.checkpoint.service import CheckpointStore
from flashpermit.classifier.service import ErrorClassifier
from flashpermit.config import EngineConfig
from flashpermit.engine.locks import PermitLocks
from flashpermit.errors import (
	ConcurrentSubmissionError,
	InvalidResumeStateError,
	NoActiveSubmissionError,
	PaymentStillDue,
	PortalValidationError,
	SessionExpiredError,
	UnknownPortalStateError,
)
from flashpermit.ocr.service import EquipmentExtractor, OcrClient
from flashpermit.portal.page import open_portal_page
from flashpermit.portal.parsing import parse_confirmation_number
from flashpermit.session.service import SessionStore
from flashpermit.session.views import Session
from flashpermit.shared_views import (
	ACTIVE_STATUSES,
	AutomationResult,
	AwaitingPaymentResult,
	Checkpoint,
	CheckpointStatus,
	CompletedResult,
	EquipmentSpec,
	ErrorKind,
	FailedResult,
	PermitData,
)
from flashpermit.steps.registry import StepRegistry
from flashpermit.steps.shape_phx import build_default_registry
from flashpermit.steps.views import StepContext, StepDescriptor, StepOutcome

logger = logging.getLogger(__name__)

PageFactory = Callable[[Session | None, EngineConfig], AbstractAsyncContextManager[Any]]

CANCELLED_MESSAGE = 'Cancelled by caller'


class AutomationEngine:
	"""Drives a permit through the portal wizard, one checkpointed step at a time.

	``run`` starts a new submission, ``resume`` continues one suspended at the
	payment gate. Neither raises: every outcome, including failures, is
	returned as an :data:`AutomationResult`. Steps submit data to the portal and
	are not safely repeatable, so a step is recorded as complete only after its
	fill action has succeeded, and is never executed again once recorded.
	"""

	def __init__(
		self,
		config: EngineConfig | None = None,
		registry: StepRegistry | None = None,
		session_store: SessionStore | None = None,
		checkpoint_store: CheckpointStore | None = None,
		classifier: ErrorClassifier | None = None,
		ocr: EquipmentExtractor | None = None,
		page_factory: PageFactory | None = None,
		locks: PermitLocks | None = None,
	):
		"""Initialize the AutomationEngine.

		Args:
			config: Engine configuration
			registry: Step lists per installation type (SHAPE PHX by default)
			session_store: Session file owner
			checkpoint_store: Checkpoint persistence
			classifier: Error classifier
			ocr: Optional OCR collaborator; built from ``config.ocr_endpoint`` when omitted
			page_factory: Opens a page for a session (a real browser by default)
			locks: Per-permit locks, shared when several engines serve one process
		"""
		self.config = config or EngineConfig()
		self.registry = registry or build_default_registry()
		self.session_store = session_store or SessionStore(
			self.config.session_file, min_indicators=self.config.min_session_indicators
		)
		self.checkpoints = checkpoint_store or CheckpointStore(self.config.checkpoint_dir)
		self.classifier = classifier or ErrorClassifier()
		if ocr is None and self.config.ocr_endpoint:
			ocr = OcrClient(self.config.ocr_endpoint, timeout_seconds=self.config.ocr_timeout_seconds)
		self.ocr = ocr
		self.page_factory = page_factory or open_portal_page
		self.locks = locks or PermitLocks()
		logger.info('AutomationEngine initialized')

	async def run(self, permit: PermitData) -> AutomationResult:
		"""Start a new portal submission for a permit.

		Args:
			permit: Permit to submit

		Returns:
			Completed, AwaitingPayment or Failed result
		"""
		start_time = time.time()
		logger.info(f'Starting submission for permit {permit.permit_id} ({permit.installation_type.value})')

		try:
			result = await self._run(permit)
		except Exception as e:
			result = self._failed(permit.permit_id, e)

		result.execution_time_ms = int((time.time() - start_time) * 1000)
		logger.info(f'Submission for permit {permit.permit_id} finished: {result.outcome}')
		return result

	async def resume(self, permit: PermitData) -> AutomationResult:
		"""Continue a submission suspended at the payment gate.

		Args:
			permit: Permit whose submission to continue

		Returns:
			Completed, AwaitingPayment or Failed result
		"""
		start_time = time.time()
		logger.info(f'Resuming submission for permit {permit.permit_id}')

		try:
			result = await self._resume(permit)
		except Exception as e:
			result = self._failed(permit.permit_id, e)

		result.execution_time_ms = int((time.time() - start_time) * 1000)
		logger.info(f'Resume for permit {permit.permit_id} finished: {result.outcome}')
		return result

	async def _run(self, permit: PermitData) -> AutomationResult:
		async with self.locks.hold(permit.permit_id):
			existing = self.checkpoints.get(permit.permit_id)
			if existing is not None:
				if existing.status in ACTIVE_STATUSES:
					raise ConcurrentSubmissionError(
						f'Permit {permit.permit_id} already has a {existing.status.value} submission'
					)
				if existing.status == CheckpointStatus.SUBMITTED:
					logger.info(f'Permit {permit.permit_id} already submitted, returning stored result')
					return self._stored_result(existing)

			steps = self.registry.resolve(permit)
			self._check_required_fields(permit, steps)

			gate_index = _payment_gate_index(steps)
			if existing is not None and gate_index is not None and steps[gate_index].name in existing.completed_steps:
				return await self._continue_submitted(permit, existing, steps, gate_index)

			session = self.session_store.load()

			attempt = existing.attempt + 1 if existing is not None else 1
			self.checkpoints.put(Checkpoint(permit_id=permit.permit_id, attempt=attempt))

			return await self._drive(permit, session, steps, start_index=0)

	async def _continue_submitted(
		self, permit: PermitData, existing: Checkpoint, steps: list[StepDescriptor], gate_index: int
	) -> AutomationResult:
		"""Pick up a failed attempt whose application the portal already accepted.

		The wizard is never replayed past a completed payment gate, that would
		file a second application. The new attempt starts suspended at the gate
		and runs only the steps after it, which need the recorded payment page.
		"""
		gate = steps[gate_index]
		if not existing.state_data.get('paymentUrl'):
			raise UnknownPortalStateError(
				f'Permit {permit.permit_id} was submitted in attempt {existing.attempt} but no permit number was read. '
				'Check the portal before filing again.',
				step_name=gate.name,
			)

		session = self.session_store.load()
		completed = existing.completed_steps
		self.checkpoints.put(
			Checkpoint(
				permit_id=permit.permit_id,
				attempt=existing.attempt + 1,
				status=CheckpointStatus.AWAITING_PAYMENT,
				current_step=gate.name,
				state_data={**existing.state_data, 'completed_steps': completed[: completed.index(gate.name) + 1]},
			)
		)
		logger.info(f'Permit {permit.permit_id} already submitted to the portal, continuing after {gate.name}')

		return await self._drive(permit, session, steps, start_index=gate_index + 1)

	async def _resume(self, permit: PermitData) -> AutomationResult:
		async with self.locks.hold(permit.permit_id):
			checkpoint = self.checkpoints.get(permit.permit_id)
			if checkpoint is None:
				raise NoActiveSubmissionError(f'No submission exists for permit {permit.permit_id}')
			if checkpoint.status == CheckpointStatus.SUBMITTED:
				logger.info(f'Permit {permit.permit_id} already submitted, returning stored result')
				return self._stored_result(checkpoint)
			if checkpoint.status != CheckpointStatus.AWAITING_PAYMENT:
				raise InvalidResumeStateError(
					f'Permit {permit.permit_id} is {checkpoint.status.value}, only awaiting_payment can be resumed'
				)

			steps = self.registry.resolve(permit)
			gate_index = _payment_gate_index(steps)
			if gate_index is None or checkpoint.current_step != steps[gate_index].name:
				raise InvalidResumeStateError(
					f'Permit {permit.permit_id} is suspended at {checkpoint.current_step!r}, not at a payment gate'
				)

			session = self.session_store.load()
			return await self._drive(permit, session, steps, start_index=gate_index + 1)

	async def _drive(
		self, permit: PermitData, session: Session, steps: list[StepDescriptor], start_index: int
	) -> AutomationResult:
		"""Open the browser, check the session and execute steps from ``start_index``.

		The browser is stopped on every exit path. Failures before the first step
		fail a pending checkpoint; a suspended one stays resumable.
		"""
		permit_id = permit.permit_id

		try:
			async with self.page_factory(session, self.config) as page:
				try:
					await page.goto(self.config.portal_url)
					check = self.session_store.validate(session, await page.snapshot())
					if check.login_required or (self.config.strict_session_check and not check.valid):
						raise SessionExpiredError(
							f'Session is no longer logged in ({check.score}/{len(check.indicators)} indicators). '
							'Run the login tool to capture a new session.'
						)
				except Exception as e:
					return await self._fail_on_page(page, permit_id, e)

				self.checkpoints.update(permit_id, status=CheckpointStatus.IN_PROGRESS)
				return await self._execute_steps(page, permit, session, steps, start_index)

		except asyncio.CancelledError:
			logger.warning(f'Submission for permit {permit_id} cancelled')
			self._mark_failed(permit_id, CANCELLED_MESSAGE, None)
			raise

		except Exception as e:
			result = self._failed(permit_id, e)
			self._mark_failed(permit_id, result.error_message, result.error_kind)
			return result

	async def _execute_steps(
		self, page: Any, permit: PermitData, session: Session, steps: list[StepDescriptor], start_index: int
	) -> AutomationResult:
		"""Execute steps strictly in order, checkpointing after each one.

		Args:
			page: The run's page handle
			permit: Permit being submitted
			session: Session in use
			steps: Full step list for the permit
			start_index: Index of the first step to consider

		Returns:
			Result of the run
		"""
		permit_id = permit.permit_id
		checkpoint = self.checkpoints.get(permit_id)
		state_data = dict(checkpoint.state_data)
		completed = checkpoint.completed_steps
		step_name = None

		try:
			for index, step in enumerate(steps[start_index:], start=start_index + 1):
				if step.name in completed:
					logger.info(f'[{permit_id}] Skipping completed step {step.name}')
					continue

				step_name = step.name
				logger.info(f'[{permit_id}] Step {index}/{len(steps)}: {step.name}')

				outcome = await self._run_step(page, permit, session, step, state_data)

				completed = [*completed, step.name]
				outputs = {**outcome.outputs, 'completed_steps': completed}

				if step.is_payment_gate and outcome.fee_amount and outcome.fee_amount > 0:
					payment_url = outcome.payment_url or outcome.page_url or self.config.portal_url
					outputs.update(paymentUrl=payment_url, feeAmount=str(outcome.fee_amount))
					self.checkpoints.update(
						permit_id,
						current_step=step.name,
						status=CheckpointStatus.AWAITING_PAYMENT,
						state_data=outputs,
					)
					logger.info(f'[{permit_id}] Awaiting payment of ${outcome.fee_amount} at {payment_url}')
					return AwaitingPaymentResult(permit_id=permit_id, payment_url=payment_url, fee_amount=outcome.fee_amount)

				if step.is_final:
					return await self._complete(page, permit_id, step, outcome, outputs)

				self.checkpoints.update(
					permit_id,
					current_step=step.name,
					status=CheckpointStatus.IN_PROGRESS,
					state_data=outputs,
				)
				state_data.update(outputs)

			raise UnknownPortalStateError(f'Step list ended without reaching a final step for permit {permit_id}')

		except PaymentStillDue as e:
			logger.info(f'[{permit_id}] {e}')
			checkpoint = self.checkpoints.update(permit_id, status=CheckpointStatus.AWAITING_PAYMENT)
			return AwaitingPaymentResult(
				permit_id=permit_id,
				payment_url=checkpoint.state_data['paymentUrl'],
				fee_amount=checkpoint.state_data['feeAmount'],
			)

		except Exception as e:
			return await self._fail_on_page(page, permit_id, e, step_name)

	async def _run_step(
		self, page: Any, permit: PermitData, session: Session, step: StepDescriptor, state_data: dict[str, Any]
	) -> StepOutcome:
		"""Re-check the session and run one step's fill action, retrying only on a timeout."""
		equipment, furnace = permit.equipment, permit.furnace
		if step.uses_equipment_data:
			equipment, furnace = await self._enrich_equipment(permit)

		attempts = self.config.step_timeout_retries + 1
		for attempt in range(1, attempts + 1):
			ctx = StepContext(
				permit=permit,
				page=page,
				state_data=dict(state_data),
				equipment=equipment,
				furnace=furnace,
				portal_url=self.config.portal_url,
			)
			try:
				await self._revalidate_session(page, session, step)
				return await asyncio.wait_for(step.action.fill(ctx), timeout=self.config.step_timeout_seconds)
			except Exception as e:
				classified = self.classifier.classify(e, step.name)
				if classified.kind != ErrorKind.STEP_TIMEOUT or attempt == attempts:
					raise
				logger.warning(
					f'Step {step.name} timed out (attempt {attempt}/{attempts}), '
					f'retrying in {self.config.retry_delay_seconds}s: {classified.raw_message}'
				)
				await asyncio.sleep(self.config.retry_delay_seconds)

		raise AssertionError('unreachable')

	async def _revalidate_session(self, page: Any, session: Session, step: StepDescriptor) -> None:
		check = self.session_store.validate(session, await page.snapshot())
		if check.login_required:
			raise SessionExpiredError(f'Portal redirected to login before step {step.name}', step_name=step.name)

	async def _enrich_equipment(self, permit: PermitData) -> tuple[EquipmentSpec | None, EquipmentSpec | None]:
		"""Fill equipment blanks from the nameplate photo.

		Best effort: OCR failures, timeouts and low-confidence readings leave the
		permit's equipment as it is.
		"""
		if self.ocr is None or not permit.equipment_photo_url:
			return permit.equipment, permit.furnace

		try:
			reading = await asyncio.wait_for(
				self.ocr.extract_equipment_data(permit.equipment_photo_url),
				timeout=self.config.ocr_timeout_seconds,
			)
		except Exception as e:
			logger.warning(f'OCR unavailable for permit {permit.permit_id}, leaving equipment blanks: {e}')
			return permit.equipment, permit.furnace

		usable = reading.usable(self.config.ocr_min_confidence)
		if not usable:
			logger.info(
				f'OCR confidence {reading.confidence}% below {self.config.ocr_min_confidence}% '
				f'for permit {permit.permit_id}, not used'
			)
			return permit.equipment, permit.furnace

		# The nameplate photo is of the cooling unit unless the permit only has a furnace
		target = 'furnace' if permit.equipment is None and permit.furnace is not None else 'equipment'
		spec = getattr(permit, target) or EquipmentSpec()
		blanks = {name: value for name, value in usable.items() if getattr(spec, name, None) in (None, '')}
		enriched = spec.model_copy(update=blanks)
		logger.info(f'OCR filled {sorted(blanks)} on {target} for permit {permit.permit_id}')

		if target == 'furnace':
			return permit.equipment, enriched
		return enriched, permit.furnace

	async def _complete(
		self, page: Any, permit_id: str, step: StepDescriptor, outcome: StepOutcome, outputs: dict[str, Any]
	) -> CompletedResult:
		confirmation_number = parse_confirmation_number(outcome.page_text)
		if not confirmation_number:
			raise UnknownPortalStateError(
				f'No confirmation number on the final page ({outcome.page_url or "unknown url"})',
				step_name=step.name,
			)

		self.checkpoints.update(
			permit_id,
			current_step=step.name,
			status=CheckpointStatus.SUBMITTED,
			state_data={
				**outputs,
				'confirmationNumber': confirmation_number,
				'confirmationText': _line_containing(outcome.page_text, confirmation_number),
			},
		)
		logger.info(f'[{permit_id}] Permit issued: {confirmation_number}')

		try:
			self.session_store.refresh(Session(storage_state=await page.storage_state()))
		except Exception as e:
			logger.warning(f'Failed to refresh session after permit {permit_id}: {e}')

		return CompletedResult(permit_id=permit_id, confirmation_number=confirmation_number)

	def _check_required_fields(self, permit: PermitData, steps: list[StepDescriptor]) -> None:
		missing = sorted({path for step in steps for path in step.required_fields if permit.lookup(path) in (None, '')})
		if missing:
			raise PortalValidationError(f'Missing required permit data: {", ".join(missing)}')

	def _stored_result(self, checkpoint: Checkpoint) -> CompletedResult:
		confirmation_number = checkpoint.state_data.get('confirmationNumber')
		if not confirmation_number:
			raise UnknownPortalStateError(f'Submitted checkpoint for {checkpoint.permit_id} has no confirmation number')
		return CompletedResult(permit_id=checkpoint.permit_id, confirmation_number=confirmation_number)

	def _failed(self, permit_id: str, error: Exception, step_name: str | None = None) -> FailedResult:
		classified = self.classifier.classify(error, step_name)

		if classified.kind == ErrorKind.UNKNOWN_PORTAL_STATE:
			logger.error(f'Permit {permit_id} failed at {classified.step_name}: {classified.raw_message}', exc_info=error)
		else:
			logger.warning(f'Permit {permit_id} failed ({classified.kind.value}): {classified.message}')

		return FailedResult(
			permit_id=permit_id,
			error_kind=classified.kind,
			step_name=classified.step_name,
			error_message=classified.message,
		)

	async def _fail_on_page(
		self, page: Any, permit_id: str, error: Exception, step_name: str | None = None
	) -> FailedResult:
		"""Fail the run while its page is still open, keeping a screenshot of it."""
		result = self._failed(permit_id, error, step_name)
		result.screenshot_path = await self._save_screenshot(page, permit_id, result.step_name)
		self._mark_failed(permit_id, result.error_message, result.error_kind, result.screenshot_path)
		return result

	async def _save_screenshot(self, page: Any, permit_id: str, step_name: str | None) -> str | None:
		if not self.config.screenshot_on_error:
			return None

		path = self.config.screenshot_dir / f'{permit_id}-{step_name or "session"}-{int(time.time())}.png'
		try:
			await page.screenshot(path)
		except Exception as screenshot_error:
			logger.error(f'Failed to take error screenshot for permit {permit_id}: {screenshot_error}')
			return None
		return str(path)

	def _mark_failed(
		self, permit_id: str, message: str, kind: ErrorKind | None, screenshot_path: str | None = None
	) -> None:
		"""Fail a pending or in-progress checkpoint; leave any other status alone."""
		changes: dict[str, Any] = {'status': CheckpointStatus.FAILED, 'error_message': message, 'error_kind': kind}
		if screenshot_path:
			changes['state_data'] = {'errorScreenshot': screenshot_path}

		try:
			checkpoint = self.checkpoints.get(permit_id)
			if checkpoint is None or checkpoint.status not in (CheckpointStatus.PENDING, CheckpointStatus.IN_PROGRESS):
				return
			self.checkpoints.update(permit_id, **changes)
		except Exception as e:
			logger.error(f'Failed to mark checkpoint {permit_id} as failed: {e}', exc_info=True)


def _payment_gate_index(steps: list[StepDescriptor]) -> int | None:
	return next((i for i, step in enumerate(steps) if step.is_payment_gate), None)


def _line_containing(text: str, needle: str) -> str:
	for line in text.splitlines():
		if needle in line:
			return line.strip()
	return needle
