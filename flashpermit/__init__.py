"""FlashPermit portal submission engine.

Submits HVAC permit applications to the Phoenix SHAPE PHX portal by driving a
browser through the portal's wizard with a persisted login session.

Components:
- SessionStore: Loads, scores and refreshes the portal session
- StepRegistry: Ordered wizard steps per installation type
- CheckpointStore: Durable per-permit submission progress
- ErrorClassifier: Maps failures to the error taxonomy
- AutomationEngine: Runs and resumes submissions
"""

from flashpermit.checkpoint.service import CheckpointStore
from flashpermit.classifier.service import ClassifiedError, ErrorClassifier
from flashpermit.config import EngineConfig
from flashpermit.engine.service import AutomationEngine
from flashpermit.ocr.service import OcrClient
from flashpermit.session.service import SessionStore
from flashpermit.shared_views import (
	AutomationResult,
	AwaitingPaymentResult,
	Checkpoint,
	CheckpointStatus,
	CompletedResult,
	ContractorInfo,
	EquipmentSpec,
	ErrorKind,
	FailedResult,
	InstallationType,
	PermitData,
	PropertyAddress,
	PropertyType,
)
from flashpermit.steps.registry import StepRegistry
from flashpermit.steps.shape_phx import build_default_registry

__version__ = '1.0.0'

__all__ = [
	# Services
	'AutomationEngine',
	'SessionStore',
	'CheckpointStore',
	'ErrorClassifier',
	'StepRegistry',
	'OcrClient',
	'build_default_registry',
	# Configuration
	'EngineConfig',
	# Permit input
	'PermitData',
	'PropertyAddress',
	'ContractorInfo',
	'EquipmentSpec',
	'InstallationType',
	'PropertyType',
	# Results
	'AutomationResult',
	'CompletedResult',
	'AwaitingPaymentResult',
	'FailedResult',
	'ErrorKind',
	'ClassifiedError',
	# Checkpoints
	'Checkpoint',
	'CheckpointStatus',
]
