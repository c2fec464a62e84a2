"""Submission engine."""

from flashpermit.engine.locks import PermitLocks
from flashpermit.engine.service import AutomationEngine

__all__ = ['AutomationEngine', 'PermitLocks']
