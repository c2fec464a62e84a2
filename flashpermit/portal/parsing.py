"""Parsing of values the portal prints on its pages."""

import logging
import re
from decimal import Decimal, InvalidOperation

logger = logging.getLogger(__name__)

_AMOUNT = r'\$\s*([\d,]+(?:\.\d{2})?)'

FEE_PATTERNS = [
	re.compile(rf'(?i:total\s+fees?|fees?\s+total|amount\s+due|total\s+due|balance\s+due|fee\s+amount)\D{{0,20}}{_AMOUNT}'),
	re.compile(rf'(?i:fees?)\D{{0,20}}{_AMOUNT}'),
]

# Prefix is case-insensitive, the number itself must contain a digit
CONFIRMATION_PATTERNS = [
	re.compile(r'(?i:permit|application|confirmation)\s*(?i:#|number|no\.?)\s*:?\s*([A-Z0-9][A-Z0-9-]*)'),
	re.compile(r'\b([A-Z]{2,4}-\d{4,}-\d+)\b'),
]


def parse_fee(text: str) -> Decimal | None:
	"""Fee the portal asks for, e.g. ``Total Fee: $127.50`` -> ``Decimal('127.50')``."""
	for pattern in FEE_PATTERNS:
		match = pattern.search(text)
		if not match:
			continue
		try:
			return Decimal(match.group(1).replace(',', ''))
		except InvalidOperation:
			logger.warning(f'Unparseable fee amount: {match.group(1)}')
	return None


def parse_confirmation_number(text: str) -> str | None:
	"""Permit / confirmation number, e.g. ``Permit #AB1234`` -> ``AB1234``."""
	for pattern in CONFIRMATION_PATTERNS:
		for match in pattern.finditer(text):
			candidate = match.group(1).strip('-')
			if any(ch.isdigit() for ch in candidate):
				return candidate
	return None
