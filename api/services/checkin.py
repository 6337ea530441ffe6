import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from api.services.analysis import AnalysisService
from lib.database import CHECKINS_TABLE, PATIENTS_TABLE, first_row
from lib.error_handler import ValidationError

logger = logging.getLogger(__name__)

RECENT_CHECKIN_COUNT = 7


def validate_checkin_request(payload: Any) -> Tuple[str, str]:
    """Return the trimmed (patient_id, transcript) or raise ValidationError."""
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')

    patient_id = payload.get('patientId')
    transcript = payload.get('transcript')

    if not patient_id:
        raise ValidationError('patientId is required')
    if not transcript:
        raise ValidationError('transcript is required')
    if not isinstance(patient_id, str) or not patient_id.strip():
        raise ValidationError('patientId must be a non-empty string')
    if not isinstance(transcript, str) or not transcript.strip():
        raise ValidationError('transcript must be a non-empty string')

    return patient_id.strip(), transcript.strip()


class CheckinService:
    def __init__(self, supabase_client, analysis_service: AnalysisService):
        self.supabase = supabase_client
        self.analysis = analysis_service
        self.checkins_table = CHECKINS_TABLE
        self.patients_table = PATIENTS_TABLE

    def fetch_patient_context(self, patient_id: str) -> Optional[Dict[str, Any]]:
        """Patient record, profile and recent check-ins, or None if unavailable."""
        if self.supabase is None:
            logger.warning("Supabase client not initialized - missing environment variables")
            return None

        try:
            patient_result = self.supabase.table(self.patients_table)\
                .select('*, profile:profiles(*)')\
                .eq('profile_id', patient_id)\
                .maybe_single()\
                .execute()
            patient = first_row(patient_result)
            if patient is None:
                logger.info(f"No patient record for {patient_id}")
                return None

            checkins_result = self.supabase.table(self.checkins_table)\
                .select('checkin_date, status, pain_level, symptoms, ai_analysis')\
                .eq('patient_id', patient_id)\
                .order('checkin_date', desc=True)\
                .limit(RECENT_CHECKIN_COUNT)\
                .execute()

            return {
                'patient': patient,
                'recent_checkins': checkins_result.data or []
            }
        except Exception as e:
            logger.error(f"Error fetching patient context: {str(e)}")
            return None

    def save_checkin(self, patient_id: str, transcript: str, analysis: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Store today's check-in; one row per patient per day."""
        if self.supabase is None:
            logger.warning("Supabase client not initialized - cannot save to database")
            return None

        now = datetime.now(timezone.utc)
        checkin_data = {
            'patient_id': patient_id,
            'checkin_date': now.date().isoformat(),
            'status': 'completed',
            'patient_notes': transcript,
            'ai_analysis': analysis,
            'completed_at': now.isoformat()
        }

        try:
            result = self.supabase.table(self.checkins_table)\
                .upsert(checkin_data, on_conflict='patient_id,checkin_date')\
                .execute()
            row = first_row(result)
            if row is None:
                logger.error("Check-in upsert returned no rows")
            return row
        except Exception as e:
            logger.error(f"Error saving checkin to database: {str(e)}")
            return None

    async def process_checkin(self, patient_id: str, transcript: str) -> Dict[str, Any]:
        received_at = datetime.now(timezone.utc).isoformat()

        logger.info("Fetching patient context...")
        context = self.fetch_patient_context(patient_id)
        if context:
            logger.info("Patient context retrieved successfully")
        else:
            logger.info("Patient context not available - proceeding with basic analysis")

        logger.info("Analyzing transcript...")
        analysis = await self.analysis.analyze(transcript, context)
        logger.info(f"Transcript analysis completed - Status: {analysis['status']}")

        logger.info("Saving check-in to database...")
        saved = self.save_checkin(patient_id, transcript, analysis)
        if saved:
            logger.info(f"Check-in saved successfully with ID: {saved.get('id')}")
        else:
            logger.warning("Failed to save check-in to database")

        return {
            'patientId': patient_id,
            'transcript': transcript,
            'receivedAt': received_at,
            'analysis': {
                'status': analysis['status'],
                'confidence': analysis['confidence'],
                'riskScore': analysis['riskScore'],
                'insights': analysis['insights'],
                'recommendations': analysis['recommendations']
            },
            'checkinId': saved.get('id') if saved else None,
            'databaseSaved': bool(saved)
        }
