"""Browser page handle for the portal."""

from flashpermit.portal.page import PortalPage, open_portal_page
from flashpermit.portal.parsing import parse_confirmation_number, parse_fee
from flashpermit.portal.views import PageSnapshot

__all__ = ['PortalPage', 'open_portal_page', 'PageSnapshot', 'parse_fee', 'parse_confirmation_number']
