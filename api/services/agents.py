import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from api.services.agent_config import (
    APP_VERSION,
    build_carebot_config,
    build_conversational_config,
)
from lib.config import Settings
from lib.database import CHECKINS_TABLE, first_row
from lib.error_handler import ConfigurationError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

PICA_MISSING_MESSAGE = 'Missing required environment variables: PICA_SECRET_KEY or PICA_ELEVENLABS_CONNECTION_KEY'


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AgentService:
    """Proxies for the ElevenLabs conversational agent API.

    Agent creation and status lookups go through the Pica passthrough; starting
    and ending conversations talk to ElevenLabs directly with ``xi-api-key``.
    """

    def __init__(self, settings: Settings, supabase_client=None):
        self.settings = settings
        self.supabase = supabase_client
        self.timeout = aiohttp.ClientTimeout(total=settings.request_timeout)

    def _pica_headers(self, action_id: str) -> Dict[str, str]:
        if not self.settings.pica_configured:
            raise ConfigurationError(PICA_MISSING_MESSAGE)
        headers = dict(self.settings.pica_headers)
        headers['x-pica-action-id'] = action_id
        return headers

    def _elevenlabs_headers(self) -> Dict[str, str]:
        if not self.settings.elevenlabs_api_key:
            raise ConfigurationError('Missing required environment variable: ELEVENLABS_API_KEY')
        return {
            'Content-Type': 'application/json',
            'xi-api-key': self.settings.elevenlabs_api_key
        }

    async def _post_json(self, service: str, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    logger.error(f"{service} API error: {response.status} - {error_text}")
                    raise UpstreamError(service, response.status, error_text)
                return await response.json()

    async def create_agent(
        self,
        patient_name: Optional[str] = None,
        surgery_type: Optional[str] = None,
        surgery_date: Optional[str] = None,
        custom_prompt: Optional[str] = None
    ) -> Dict[str, Any]:
        headers = self._pica_headers(self.settings.pica_create_agent_action_id)
        config = build_carebot_config(
            patient_name=patient_name,
            surgery_type=surgery_type,
            surgery_date=surgery_date,
            custom_prompt=custom_prompt,
            voice_id=self.settings.elevenlabs_agent_voice_id
        )

        logger.info(f"Creating CareBot agent for {patient_name or 'unnamed patient'}")
        result = await self._post_json(
            'Pica',
            f"{self.settings.pica_base_url}/v1/convai/agents/create",
            headers,
            config
        )
        logger.info(f"Agent created successfully: {result.get('agent_id')}")

        return {
            'success': True,
            'agent_id': result.get('agent_id'),
            'message': 'ConnectCare AI agent created successfully',
            'patient_info': {
                'name': patient_name,
                'surgery_type': surgery_type,
                'surgery_date': surgery_date
            }
        }

    async def create_conversational_agent(
        self,
        patient_id: Optional[str] = None,
        patient_name: str = 'Patient',
        medical_condition: str = 'post-surgery recovery',
        custom_prompt: Optional[str] = None,
        voice_id: Optional[str] = None,
        language: str = 'en'
    ) -> Dict[str, Any]:
        headers = self._pica_headers(self.settings.pica_create_agent_action_id)
        voice_id = voice_id or self.settings.elevenlabs_agent_voice_id
        config = build_conversational_config(
            patient_id=patient_id,
            patient_name=patient_name,
            medical_condition=medical_condition,
            custom_prompt=custom_prompt,
            voice_id=voice_id,
            language=language
        )

        result = await self._post_json(
            'Pica',
            f"{self.settings.pica_base_url}/v1/convai/agents/create",
            headers,
            config
        )
        logger.info(f"Conversational agent created for patient {patient_id}: {result.get('agent_id')}")

        return {
            'success': True,
            'agent_id': result.get('agent_id'),
            'patient_id': patient_id,
            'patient_name': patient_name,
            'voice_id': voice_id,
            'language': language,
            'created_at': _now().isoformat(),
            'message': 'Conversational agent created successfully for ConnectCare AI'
        }

    async def start_conversation(
        self,
        agent_id: Optional[str],
        patient_id: Optional[str] = None,
        session_data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if not agent_id:
            raise ValidationError('Agent ID is required to start conversation')
        headers = self._elevenlabs_headers()

        payload = {
            'agent_id': agent_id,
            'client_data': {
                'patient_id': patient_id,
                'session_start': _now().isoformat(),
                'patient_context': session_data or {},
                'app_version': APP_VERSION
            }
        }
        result = await self._post_json(
            'ElevenLabs',
            f"{self.settings.elevenlabs_base_url}/v1/convai/conversations",
            headers,
            payload
        )
        logger.info(f"Conversation started for patient {patient_id} with agent {agent_id}")

        return {
            'success': True,
            'conversation_id': result.get('conversation_id'),
            'agent_id': agent_id,
            'patient_id': patient_id,
            'websocket_url': result.get('websocket_url') or result.get('signed_url'),
            'session_token': result.get('session_token'),
            'started_at': _now().isoformat(),
            'message': 'Conversation started successfully'
        }

    async def _end_vendor_conversation(self, conversation_id: str):
        """Best effort; the check-in is still recorded if this fails."""
        if not self.settings.elevenlabs_api_key:
            logger.warning("Missing ELEVENLABS_API_KEY - conversation will not be ended via API")
            return

        url = f"{self.settings.elevenlabs_base_url}/v1/convai/conversations/{conversation_id}/end"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, headers=self._elevenlabs_headers()) as response:
                    if not 200 <= response.status < 300:
                        logger.warning(f"Failed to end conversation via ElevenLabs API: {response.status}")
        except Exception as e:
            logger.warning(f"Error ending conversation via API: {str(e)}")

    def _save_conversation_checkin(
        self,
        conversation_id: str,
        patient_id: str,
        transcript: Optional[str],
        summary: Optional[str],
        duration: Optional[float],
        health_metrics: Optional[Dict[str, Any]]
    ) -> bool:
        metrics = health_metrics or {}
        now = _now()
        checkin_data = {
            'patient_id': patient_id,
            'checkin_date': now.date().isoformat(),
            'status': 'completed',
            'patient_notes': transcript or 'Voice conversation completed',
            'ai_analysis': {
                'conversation_id': conversation_id,
                'summary': summary,
                'duration_seconds': duration,
                'health_metrics': health_metrics,
                'analysis_type': 'elevenlabs_conversation',
                'processed_at': now.isoformat()
            },
            'completed_at': now.isoformat(),
            'pain_level': metrics.get('painLevel'),
            'symptoms': metrics.get('symptoms'),
            'medications_taken': bool(metrics.get('medicationCompliance'))
        }

        try:
            result = self.supabase.table(CHECKINS_TABLE)\
                .upsert(checkin_data, on_conflict='patient_id,checkin_date')\
                .execute()
        except Exception as e:
            logger.error(f"Error saving check-in to database: {str(e)}")
            return False

        row = first_row(result)
        logger.info(f"Check-in saved to database: {row.get('id') if row else None}")
        return True

    async def end_conversation(
        self,
        conversation_id: Optional[str],
        patient_id: Optional[str],
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
        duration: Optional[float] = None,
        health_metrics: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if not conversation_id or not patient_id:
            raise ValidationError('Conversation ID and Patient ID are required')

        await self._end_vendor_conversation(conversation_id)

        database_saved = False
        if self.supabase is not None:
            database_saved = self._save_conversation_checkin(
                conversation_id, patient_id, transcript, summary, duration, health_metrics
            )
        else:
            logger.warning("Supabase client not initialized - conversation not saved")

        logger.info(f"Conversation ended for patient {patient_id}: {conversation_id}")
        return {
            'success': True,
            'conversation_id': conversation_id,
            'patient_id': patient_id,
            'ended_at': _now().isoformat(),
            'transcript_saved': bool(transcript),
            'database_saved': database_saved,
            'message': 'Conversation ended and data saved successfully'
        }

    async def get_conversation_status(self, conversation_id: Optional[str]) -> Dict[str, Any]:
        if not self.settings.pica_configured:
            raise ConfigurationError(
                'Missing Pica credentials',
                user_message='Server configuration error. Missing API credentials.'
            )
        if not conversation_id:
            raise ValidationError('conversation_id parameter is required')

        headers = self._pica_headers(self.settings.pica_conversation_status_action_id)
        url = f"{self.settings.pica_base_url}/v1/convai/conversations/{conversation_id}"

        logger.info(f"Getting conversation status for: {conversation_id}")
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(url, headers=headers) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    logger.error(f"Pica API error: {response.status} - {error_text}")
                    raise UpstreamError('Pica', response.status, error_text)
                result = await response.json()

        return {
            'success': True,
            'conversation_id': result.get('conversation_id'),
            'status': result.get('status'),
            'transcript': result.get('transcript'),
            'duration': result.get('duration'),
            'message': 'Conversation status retrieved successfully'
        }
