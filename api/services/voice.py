import base64
import binascii
import logging
import os
import tempfile
from typing import Any, Dict, Optional

import aiohttp
from openai import OpenAI

from lib.config import Settings
from lib.error_handler import AppError, ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

TEXT_TO_SPEECH = 'text-to-speech'
SPEECH_TO_TEXT = 'speech-to-text'

TTS_MODEL = 'eleven_monolingual_v1'
STT_PLACEHOLDER = {
    'text': "This is a placeholder transcription. Please integrate with a proper STT service like OpenAI Whisper.",
    'error': "STT not implemented - use OpenAI Whisper or similar service"
}


class VoiceService:
    def __init__(self, settings: Settings, openai_client: Optional[OpenAI] = None):
        self.settings = settings
        self.client = openai_client
        self.timeout = aiohttp.ClientTimeout(total=settings.request_timeout)

    async def handle(self, action: Optional[str], text: Optional[str] = None,
                     audio_data: Optional[str] = None, content_type: Optional[str] = None) -> Dict[str, Any]:
        if not self.settings.elevenlabs_api_key:
            raise ConfigurationError('ElevenLabs API key not configured')

        if action == TEXT_TO_SPEECH:
            audio = await self.text_to_speech(text)
            return {'audioData': audio}
        if action == SPEECH_TO_TEXT:
            return await self.speech_to_text(audio_data, content_type)

        raise ValidationError('Invalid action')

    async def text_to_speech(self, text: Optional[str]) -> str:
        """Synthesize ``text`` and return the MP3 as base64."""
        if not text:
            raise ValidationError('text is required')

        url = f"{self.settings.elevenlabs_base_url}/v1/text-to-speech/{self.settings.elevenlabs_tts_voice_id}"
        headers = {
            'Accept': 'audio/mpeg',
            'Content-Type': 'application/json',
            'xi-api-key': self.settings.elevenlabs_api_key
        }
        payload = {
            'text': text,
            'model_id': TTS_MODEL,
            'voice_settings': {
                'stability': 0.5,
                'similarity_boost': 0.5
            }
        }

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"ElevenLabs TTS Error: {error_text}")
                    raise AppError(
                        f"ElevenLabs TTS error: {response.status} - {error_text}",
                        status_code=500,
                        user_message='Failed to generate speech'
                    )
                audio = await response.read()

        logger.info(f"Generated speech: {len(audio)} bytes")
        return base64.b64encode(audio).decode('ascii')

    async def speech_to_text(self, audio_data: Optional[str], content_type: Optional[str] = None) -> Dict[str, Any]:
        if self.client is None:
            logger.warning("OpenAI client not configured - returning placeholder transcription")
            return dict(STT_PLACEHOLDER)
        if not audio_data:
            raise ValidationError('audioData is required')

        try:
            audio = base64.b64decode(audio_data, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError('audioData must be base64 encoded')

        return {'text': self._transcribe_audio(audio, self._get_extension_from_content_type(content_type))}

    def _transcribe_audio(self, audio: bytes, extension: str) -> str:
        logger.info("Transcribing with OpenAI...")
        with tempfile.NamedTemporaryFile(suffix=f'.{extension}') as temp_file:
            temp_file.write(audio)
            temp_file.flush()

            logger.info(f"Audio file size: {os.path.getsize(temp_file.name)} bytes")

            try:
                with open(temp_file.name, 'rb') as audio_file:
                    response = self.client.audio.transcriptions.create(
                        model="whisper-1",
                        file=audio_file,
                        response_format="text"
                    )
            except Exception as e:
                logger.error(f"Whisper transcription failed: {str(e)}")
                raise AppError(str(e), status_code=500, user_message='Failed to transcribe audio')

        logger.info(f"Transcription complete: {response[:50]}...")
        return response

    def _get_extension_from_content_type(self, content_type: Optional[str]) -> str:
        """Convert content type to file extension"""
        content_type_map = {
            'audio/mp3': 'mp3',
            'audio/mpeg': 'mp3',
            'audio/mp4': 'm4a',
            'audio/m4a': 'm4a',
            'audio/x-m4a': 'm4a',
            'audio/ogg': 'ogg',
            'audio/wav': 'wav',
            'audio/x-wav': 'wav',
            'audio/webm': 'webm',
        }

        if not content_type:
            return 'm4a'  # expo-av records m4a by default

        extension = content_type_map.get(content_type.lower())
        if not extension:
            logger.warning(f"Unknown content type: {content_type}, defaulting to m4a")
            return 'm4a'

        return extension
