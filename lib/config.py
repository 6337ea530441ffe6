from typing import Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    # App settings
    environment: str = Field(
        default='production',
        validation_alias=AliasChoices('ENVIRONMENT', 'NODE_ENV')
    )
    log_level: str = 'INFO'
    request_timeout: float = 30.0

    # Supabase settings
    supabase_url: str = Field(
        default='',
        validation_alias=AliasChoices('SUPABASE_URL', 'EXPO_PUBLIC_SUPABASE_URL')
    )
    supabase_key: str = Field(
        default='',
        validation_alias=AliasChoices('SUPABASE_KEY', 'EXPO_PUBLIC_SUPABASE_ANON_KEY')
    )
    supabase_service_role_key: str = ''

    # ElevenLabs settings
    elevenlabs_api_key: str = Field(
        default='',
        validation_alias=AliasChoices('ELEVENLABS_API_KEY', 'EXPO_PUBLIC_ELEVENLABS_API_KEY')
    )
    elevenlabs_webhook_secret: str = ''
    elevenlabs_base_url: str = 'https://api.elevenlabs.io'
    elevenlabs_tts_voice_id: str = 'pNInz6obpgDQGcFmaJgB'
    elevenlabs_agent_voice_id: str = 'cjVigY5qzO86Huf0OWal'
    signature_tolerance_seconds: Optional[int] = None

    # Pica passthrough settings
    pica_secret_key: str = ''
    pica_elevenlabs_connection_key: str = ''
    pica_base_url: str = 'https://api.picaos.com/v1/passthrough'
    pica_create_agent_action_id: str = 'conn_mod_def::GCcb_iT9I0k::xNo_w809TEu2pRzqcCQ4_w'
    pica_conversation_status_action_id: str = 'conn_mod_def::GCcb_iT9I0k::get_conversation_status_action_id'

    # OpenAI settings
    openai_api_key: str = ''
    openai_model: str = 'gpt-4o-mini'
    analysis_provider: str = 'keyword'  # keyword | openai

    # Profile polling after signup
    profile_fetch_attempts: int = 5
    profile_fetch_delay: float = 1.0

    model_config = SettingsConfigDict(
        env_file='.env',
        case_sensitive=False,
        extra='ignore'
    )

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == 'development'

    @property
    def database_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def pica_configured(self) -> bool:
        return bool(self.pica_secret_key and self.pica_elevenlabs_connection_key)

    @property
    def pica_headers(self) -> dict:
        return {
            'Content-Type': 'application/json',
            'x-pica-secret': self.pica_secret_key,
            'x-pica-connection-key': self.pica_elevenlabs_connection_key,
        }


def get_settings() -> Settings:
    return Settings()
