import logging
from typing import Optional

from supabase import create_client, Client

from lib.config import Settings, get_settings

logger = logging.getLogger(__name__)

PROFILES_TABLE = 'profiles'
PATIENTS_TABLE = 'patients'
DOCTORS_TABLE = 'doctors'
CONVERSATIONS_TABLE = 'conversations'
CHECKINS_TABLE = 'daily_checkins'


def create_service_client(settings: Optional[Settings] = None) -> Optional[Client]:
    """Supabase client using the service-role key; bypasses RLS.

    Returns None when the project URL or the service-role key is missing so
    callers can report the database as unconfigured.
    """
    settings = settings or get_settings()
    if not settings.database_configured:
        logger.warning("Supabase service role credentials not configured")
        return None

    try:
        client: Client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key
        )
        logger.info("Supabase client initialized successfully")
        return client
    except Exception as e:
        logger.error(f"Error initializing Supabase client: {str(e)}")
        raise


def first_row(result) -> Optional[dict]:
    """First row of a PostgREST response, or None.

    ``maybe_single().execute()`` returns None instead of a response when no
    row matches.
    """
    if result is None or not result.data:
        return None
    if isinstance(result.data, list):
        return result.data[0]
    return result.data
