"""
Per-client integration settings (Facebook pixel credentials).
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from leadscore.database import get_session
from leadscore.errors import PersistenceError
from leadscore.models.client_settings import ClientSettings

logger = logging.getLogger('services.client_settings')


def get_pixel_credentials(client_id: str, session_factory=None) -> Optional[Tuple[str, str]]:
    """(pixel_id, pixel_token) for a client, or None when either is missing."""
    session = (session_factory or get_session)()
    try:
        settings = session.get(ClientSettings, client_id)
        if settings is None or not settings.fb_pixel_id or not settings.fb_pixel_token:
            return None
        return settings.fb_pixel_id, settings.fb_pixel_token
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to load settings for client {client_id}: {e}") from e
    finally:
        session.close()


def save_pixel_credentials(client_id: str, pixel_id: str, pixel_token: str, session_factory=None):
    session = (session_factory or get_session)()
    try:
        settings = session.get(ClientSettings, client_id)
        if settings is None:
            settings = ClientSettings(client_id=client_id)
            session.add(settings)
        settings.fb_pixel_id = pixel_id
        settings.fb_pixel_token = pixel_token
        session.commit()
        logger.info("Saved pixel credentials for client %s", client_id, extra={'client_id': client_id})
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Failed to save settings for client {client_id}: {e}") from e
    finally:
        session.close()
