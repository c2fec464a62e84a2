"""Step registry - ordered wizard steps per installation type."""

import logging
from collections.abc import Iterable

from flashpermit.errors import NoAutomationPathError
from flashpermit.shared_views import InstallationType, PermitData, PropertyType
from flashpermit.steps.views import StepDescriptor

logger = logging.getLogger(__name__)


class StepRegistry:
	"""Maps installation types to their ordered step lists.

	Supporting a new installation type means registering a new list; the
	engine itself has no per-type logic.
	"""

	def __init__(self):
		self._steps: dict[InstallationType, tuple[StepDescriptor, ...]] = {}

	def register(self, installation_type: InstallationType | str, steps: Iterable[StepDescriptor]) -> None:
		"""Register the ordered steps for an installation type.

		Args:
			installation_type: Type the steps apply to
			steps: Ordered step descriptors

		Raises:
			ValueError: If the list is malformed
		"""
		installation_type = InstallationType(installation_type)
		steps = tuple(steps)

		if installation_type == InstallationType.CUSTOM:
			raise ValueError('Custom installations are handled manually and cannot have steps')
		if installation_type in self._steps:
			raise ValueError(f'Steps already registered for {installation_type.value}')
		if not steps:
			raise ValueError('A step list needs at least one step')

		names = [step.name for step in steps]
		if len(set(names)) != len(names):
			raise ValueError(f'Duplicate step names for {installation_type.value}: {names}')

		finals = [i for i, step in enumerate(steps) if step.is_final]
		if finals != [len(steps) - 1]:
			raise ValueError(f'{installation_type.value}: exactly one final step is required and it must be last')

		gates = [step for step in steps if step.is_payment_gate]
		if len(gates) > 1:
			raise ValueError(f'{installation_type.value}: at most one payment gate is allowed')
		if gates and gates[0].is_final:
			raise ValueError(f'{installation_type.value}: the payment gate cannot be the final step')

		self._steps[installation_type] = steps
		logger.info(f'Registered {len(steps)} steps for {installation_type.value}')

	def steps_for(self, installation_type: InstallationType | str) -> list[StepDescriptor]:
		"""Ordered steps for an installation type.

		Args:
			installation_type: Installation type

		Returns:
			Ordered step descriptors

		Raises:
			NoAutomationPathError: If the type has no automated submission path
		"""
		try:
			installation_type = InstallationType(installation_type)
		except ValueError:
			raise NoAutomationPathError(f'Unknown installation type: {installation_type}') from None

		steps = self._steps.get(installation_type)
		if steps is None:
			raise NoAutomationPathError(
				f'No automation path for {installation_type.value} installations; route to manual handling'
			)
		return list(steps)

	def resolve(self, permit: PermitData) -> list[StepDescriptor]:
		"""Steps for a permit, taking its property type into account.

		Raises:
			NoAutomationPathError: For commercial properties and non-automatable types
		"""
		if permit.property_type == PropertyType.COMMERCIAL:
			raise NoAutomationPathError('No automation path for commercial properties; route to manual handling')
		return self.steps_for(permit.installation_type)

	def has_automation_path(self, permit: PermitData) -> bool:
		try:
			self.resolve(permit)
		except NoAutomationPathError:
			return False
		return True

	@property
	def installation_types(self) -> list[InstallationType]:
		return list(self._steps)
