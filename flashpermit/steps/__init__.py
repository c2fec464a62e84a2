"""Wizard step definitions."""

from flashpermit.steps.registry import StepRegistry
from flashpermit.steps.shape_phx import build_default_registry
from flashpermit.steps.views import FormStep, StepContext, StepDescriptor, StepOutcome

__all__ = [
	'StepRegistry',
	'build_default_registry',
	# Step models
	'FormStep',
	'StepContext',
	'StepDescriptor',
	'StepOutcome',
]
