"""Portal session handling."""

from flashpermit.session.service import SessionStore
from flashpermit.session.views import Session, SessionCheck

__all__ = ['SessionStore', 'Session', 'SessionCheck']
