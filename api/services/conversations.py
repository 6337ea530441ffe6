import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from lib.database import CONVERSATIONS_TABLE, PROFILES_TABLE, first_row
from lib.error_handler import AppError

logger = logging.getLogger(__name__)

TRANSCRIPTION_EVENT = 'post_call_transcription'
MAX_LIST_LIMIT = 100


def _dig(source: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(source, dict):
            return None
        source = source.get(key)
    return source


class ConversationService:
    def __init__(self, supabase_client):
        self.supabase = supabase_client
        self.conversations_table = CONVERSATIONS_TABLE
        self.profiles_table = PROFILES_TABLE

    @staticmethod
    def get_event_type(payload: Dict[str, Any]) -> Optional[str]:
        """Current ElevenLabs payloads use ``type``; older ones ``event_type``."""
        event_type = payload.get('type')
        if event_type is None:
            event_type = payload.get('event_type')
        return event_type

    @staticmethod
    def resolve_patient_id(payload: Dict[str, Any]) -> Optional[str]:
        """Find the patient id in any of the places the client may have put it."""
        candidates = (
            _dig(payload, 'data', 'metadata', 'patient_id'),
            _dig(payload, 'data', 'conversation_initiation_client_data', 'dynamic_variables', 'patient_id'),
            _dig(payload, 'data', 'user_id'),
            _dig(payload, 'metadata', 'patient_id'),
        )
        for candidate in candidates:
            if candidate:
                return candidate
        return None

    def patient_exists(self, patient_id: str) -> bool:
        try:
            result = self.supabase.table(self.profiles_table)\
                .select('id, role')\
                .eq('id', patient_id)\
                .eq('role', 'patient')\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.warning(f"Patient lookup failed for {patient_id}: {str(e)}")
            return False
        return first_row(result) is not None

    def _find_existing(self, patient_id: str, vendor_conversation_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(self.conversations_table)\
            .select('id')\
            .eq('patient_id', patient_id)\
            .eq('conversation_data->>conversation_id', vendor_conversation_id)\
            .limit(1)\
            .execute()
        return first_row(result)

    def store_conversation(self, patient_id: str, conversation_data: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Insert the conversation, or update the row already stored for it.

        Returns the stored row and whether it was newly created. Redelivered
        webhooks carry the same vendor ``conversation_id`` and land on the
        existing row.
        """
        vendor_id = _dig(conversation_data, 'conversation_id')
        try:
            existing = self._find_existing(patient_id, vendor_id) if vendor_id else None

            if existing:
                logger.info(f"Conversation {vendor_id} already stored as {existing['id']}, updating")
                result = self.supabase.table(self.conversations_table)\
                    .update({
                        'conversation_data': conversation_data,
                        'updated_at': datetime.now(timezone.utc).isoformat()
                    })\
                    .eq('id', existing['id'])\
                    .execute()
                row = first_row(result) or existing
                return row, False

            result = self.supabase.table(self.conversations_table)\
                .insert({
                    'patient_id': patient_id,
                    'conversation_data': conversation_data
                })\
                .execute()
            row = first_row(result)
            if row is None:
                raise AppError("Insert returned no rows")
            return row, True

        except AppError as e:
            logger.error(f"Failed to insert conversation: {e.message}")
            raise AppError(e.message, status_code=500, user_message='Failed to save conversation')
        except Exception as e:
            logger.error(f"Failed to insert conversation: {str(e)}")
            raise AppError(str(e), status_code=500, user_message='Failed to save conversation')

    def list_conversations(self, patient_id: Optional[str] = None, limit: int = 10) -> List[Dict[str, Any]]:
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        query = self.supabase.table(self.conversations_table)\
            .select('id, patient_id, conversation_data, created_at, updated_at')\
            .order('created_at', desc=True)\
            .limit(limit)
        if patient_id:
            query = query.eq('patient_id', patient_id)
        result = query.execute()
        return result.data or []

    def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(self.conversations_table)\
            .select('*')\
            .eq('id', conversation_id)\
            .maybe_single()\
            .execute()
        return first_row(result)

    @staticmethod
    def summarize(conversation: Dict[str, Any]) -> Dict[str, Any]:
        """Display summary of a stored conversation blob."""
        # the stored blob is never validated, so any level may be missing or the wrong type
        data = _dig(conversation, 'conversation_data')
        if not isinstance(data, dict):
            data = {}
        analysis = data.get('analysis')
        if not isinstance(analysis, dict):
            analysis = {}
        metadata = data.get('metadata')
        if not isinstance(metadata, dict):
            metadata = {}

        summary = (
            data.get('summary')
            or analysis.get('summary')
            or analysis.get('transcript_summary')
            or 'No summary available'
        )

        duration = 'Unknown duration'
        seconds = metadata.get('call_duration') or metadata.get('call_duration_secs')
        try:
            seconds = float(seconds) if seconds else 0.0
        except (TypeError, ValueError):
            seconds = 0.0
        if seconds and math.isfinite(seconds):
            # half-up, so 150s reads "3 min"
            duration = f"{math.floor(seconds / 60 + 0.5)} min"

        speakers = set()
        transcript = data.get('transcript')
        for segment in transcript if isinstance(transcript, list) else []:
            if isinstance(segment, dict):
                speaker = segment.get('speaker') or segment.get('role')
                if speaker:
                    speakers.add(speaker)

        key_topics = analysis.get('key_topics') or analysis.get('topics') or []

        return {
            'summary': summary,
            'duration': duration,
            'participantCount': len(speakers),
            'keyTopics': key_topics if isinstance(key_topics, list) else []
        }
