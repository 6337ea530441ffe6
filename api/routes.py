from flask import Flask, request, jsonify
import json
import logging
import sys
from datetime import datetime, timezone
from openai import OpenAI

from lib.config import get_settings
from lib.database import create_service_client
from lib.error_handler import (
    AppError,
    ConfigurationError,
    ErrorHandler,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from lib.signature import SIGNATURE_HEADERS, verify_signature
from .services.agents import AgentService
from .services.analysis import AnalysisService
from .services.checkin import CheckinService, validate_checkin_request
from .services.conversations import ConversationService, TRANSCRIPTION_EVENT
from .services.profiles import ProfileService
from .services.voice import VoiceService

VERSION = '1.0.0'

settings = get_settings()

# Configure detailed logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
    force=True  # Ensure our config takes precedence
)

# Create logger for this file
logger = logging.getLogger(__name__)

# Initialize Flask
app = Flask(__name__)

# Initialize clients
logger.info("Initializing Supabase client...")
supabase = create_service_client(settings)

openai_client = None
if settings.openai_api_key:
    logger.info("Initializing OpenAI client...")
    openai_client = OpenAI(api_key=settings.openai_api_key)
    logger.info("OpenAI client initialized successfully")
else:
    logger.warning("OPENAI_API_KEY not set - keyword analysis and placeholder STT only")

# Initialize services
logger.info("Initializing services...")
try:
    use_llm = settings.analysis_provider.lower() == 'openai' and openai_client is not None
    analysis_service = AnalysisService(
        openai_client=openai_client if use_llm else None,
        model=settings.openai_model
    )

    conversation_service = ConversationService(supabase_client=supabase)

    checkin_service = CheckinService(
        supabase_client=supabase,
        analysis_service=analysis_service
    )

    agent_service = AgentService(
        settings=settings,
        supabase_client=supabase
    )

    voice_service = VoiceService(
        settings=settings,
        openai_client=openai_client
    )

    profile_service = ProfileService(
        supabase_client=supabase,
        fetch_attempts=settings.profile_fetch_attempts,
        fetch_delay=settings.profile_fetch_delay
    )

    logger.info("All services initialized successfully")
except Exception as e:
    logger.error(f"Failed to initialize services: {str(e)}")
    raise e


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _signature_header():
    for name in SIGNATURE_HEADERS:
        value = request.headers.get(name)
        if value:
            return value
    return None


@app.after_request
def add_cors_headers(response):
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Headers'] = (
        'authorization, x-client-info, apikey, content-type, elevenlabs-signature, xi-signature'
    )
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
    return response


@app.errorhandler(AppError)
def handle_app_error(error: AppError):
    logger.warning(f"{type(error).__name__}: {error.message}")
    return jsonify({'error': error.user_message}), error.status_code


@app.errorhandler(404)
def not_found(error):
    return jsonify({
        'error': 'Not Found',
        'message': f"Route {request.path} not found"
    }), 404


@app.route('/', methods=['GET'])
def root():
    """Basic health check"""
    return jsonify({
        'status': 'ok',
        'message': 'ConnectCare AI backend is running',
        'timestamp': _timestamp(),
        'version': VERSION
    })


@app.route('/status', methods=['GET'])
def status():
    """Check which integrations are configured"""
    return jsonify({
        'database': settings.database_configured and supabase is not None,
        'webhook_secret': bool(settings.elevenlabs_webhook_secret),
        'elevenlabs': bool(settings.elevenlabs_api_key),
        'pica': settings.pica_configured,
        'openai': openai_client is not None,
        'analysis_provider': settings.analysis_provider,
        'environment': settings.environment
    })


@app.route('/api/elevenlabs-webhook', methods=['POST'])
async def elevenlabs_webhook():
    try:
        logger.info("ElevenLabs webhook received")

        if not settings.elevenlabs_webhook_secret:
            logger.error("ELEVENLABS_WEBHOOK_SECRET not configured")
            return jsonify({'error': 'Webhook secret not configured'}), 500

        if not settings.database_configured or conversation_service.supabase is None:
            logger.error("Supabase service role credentials not configured")
            return jsonify({'error': 'Database connection not configured'}), 500

        raw_body = request.get_data(as_text=True)
        verify_signature(
            raw_body,
            _signature_header(),
            settings.elevenlabs_webhook_secret,
            tolerance_seconds=settings.signature_tolerance_seconds
        )

        try:
            payload = json.loads(raw_body)
        except ValueError:
            logger.error("Webhook body is not valid JSON")
            return jsonify({'error': 'Invalid JSON payload'}), 400
        if not isinstance(payload, dict):
            logger.error("Webhook body is not a JSON object")
            return jsonify({'error': 'Invalid JSON payload'}), 400

        event_type = ConversationService.get_event_type(payload)
        logger.info(f"Webhook event type: {event_type}")
        if event_type != TRANSCRIPTION_EVENT:
            return jsonify({'message': 'Event ignored'}), 200

        patient_id = ConversationService.resolve_patient_id(payload)
        if not patient_id:
            logger.error("No patient ID found in webhook payload")
            return jsonify({'error': 'Patient ID not found in webhook data'}), 400

        if not conversation_service.patient_exists(patient_id):
            logger.error(f"Patient not found: {patient_id}")
            return jsonify({'error': 'Patient not found'}), 404

        row, created = conversation_service.store_conversation(patient_id, payload.get('data') or {})
        logger.info(
            f"Conversation {'saved' if created else 'updated'} for patient {patient_id}: {row.get('id')}"
        )

        return jsonify({
            'success': True,
            'conversationId': row.get('id'),
            'message': 'Conversation saved successfully'
        }), 200

    except AppError as e:
        logger.error(f"Webhook rejected: {e.message}")
        return jsonify({'error': e.user_message}), e.status_code
    except Exception as e:
        return jsonify(ErrorHandler.handle_webhook_error(e)), 500


@app.route('/api/elevenlabs-webhook', methods=['GET'])
def elevenlabs_webhook_info():
    return jsonify({'message': 'ElevenLabs webhook endpoint - POST only'}), 405


@app.route('/api/checkin', methods=['POST'])
async def checkin():
    try:
        logger.info("Check-in received")
        patient_id, transcript = validate_checkin_request(request.get_json(silent=True))
        logger.info(f"Processing check-in for patient: {patient_id}")

        data = await checkin_service.process_checkin(patient_id, transcript)

        return jsonify({
            'success': True,
            'message': 'Check-in processed successfully',
            'data': data
        }), 200

    except ValidationError as e:
        logger.warning(f"Invalid check-in request: {e.message}")
        return jsonify({'error': 'Bad Request', 'message': e.message}), 400
    except Exception as e:
        return jsonify(ErrorHandler.handle_checkin_error(e, include_details=settings.is_development)), 500


def _require_database():
    if conversation_service.supabase is None:
        raise ConfigurationError('Database connection not configured')


@app.route('/api/conversations', methods=['GET'])
def list_conversations():
    try:
        _require_database()
        patient_id = request.args.get('patient_id')
        limit = request.args.get('limit', default=10, type=int)

        conversations = conversation_service.list_conversations(patient_id=patient_id, limit=limit)
        return jsonify({
            'success': True,
            'conversations': [
                dict(conversation, summary=ConversationService.summarize(conversation))
                for conversation in conversations
            ]
        })
    except AppError:
        raise
    except Exception as e:
        logger.error(f"Error listing conversations: {str(e)}", exc_info=True)
        return jsonify({'error': 'Internal server error'}), 500


@app.route('/api/conversations/<conversation_id>', methods=['GET'])
def get_conversation(conversation_id):
    try:
        _require_database()
        conversation = conversation_service.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError('Conversation not found')

        return jsonify({
            'success': True,
            'conversation': dict(conversation, summary=ConversationService.summarize(conversation))
        })
    except AppError:
        raise
    except Exception as e:
        logger.error(f"Error fetching conversation {conversation_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Internal server error'}), 500


def _agent_error(error: Exception) -> dict:
    return ErrorHandler.handle_agent_error(error, _timestamp())


@app.route('/api/agents', methods=['POST'])
async def create_agent():
    try:
        body = request.get_json(silent=True) or {}
        result = await agent_service.create_agent(
            patient_name=body.get('patient_name'),
            surgery_type=body.get('surgery_type'),
            surgery_date=body.get('surgery_date'),
            custom_prompt=body.get('custom_prompt')
        )
        return jsonify(result), 200
    except Exception as e:
        body = _agent_error(e)
        body['details'] = 'Please check your environment variables and try again'
        return jsonify(body), 500


@app.route('/api/agents/conversational', methods=['POST'])
async def create_conversational_agent():
    try:
        body = request.get_json(silent=True) or {}
        result = await agent_service.create_conversational_agent(
            patient_id=body.get('patientId'),
            patient_name=body.get('patientName') or 'Patient',
            medical_condition=body.get('medicalCondition') or 'post-surgery recovery',
            custom_prompt=body.get('customPrompt'),
            voice_id=body.get('voiceId'),
            language=body.get('language') or 'en'
        )
        return jsonify(result), 200
    except Exception as e:
        return jsonify(_agent_error(e)), 500


@app.route('/api/conversations/start', methods=['POST'])
async def start_conversation():
    try:
        body = request.get_json(silent=True) or {}
        result = await agent_service.start_conversation(
            agent_id=body.get('agentId'),
            patient_id=body.get('patientId'),
            session_data=body.get('sessionData')
        )
        return jsonify(result), 200
    except Exception as e:
        return jsonify(_agent_error(e)), 500


@app.route('/api/conversations/end', methods=['POST'])
async def end_conversation():
    try:
        body = request.get_json(silent=True) or {}
        result = await agent_service.end_conversation(
            conversation_id=body.get('conversationId'),
            patient_id=body.get('patientId'),
            transcript=body.get('transcript'),
            summary=body.get('summary'),
            duration=body.get('duration'),
            health_metrics=body.get('healthMetrics')
        )
        return jsonify(result), 200
    except Exception as e:
        return jsonify(_agent_error(e)), 500


@app.route('/api/conversations/status', methods=['GET'])
async def conversation_status():
    try:
        result = await agent_service.get_conversation_status(request.args.get('conversation_id'))
        return jsonify(result), 200
    except UpstreamError as e:
        return jsonify({
            'success': False,
            'error': f"Failed to get conversation status: {e.upstream_status}",
            'details': e.body
        }), e.upstream_status
    except AppError as e:
        return jsonify({'success': False, 'error': e.user_message}), e.status_code
    except Exception as e:
        logger.error(f"Error in conversation status: {str(e)}", exc_info=True)
        return jsonify({
            'success': False,
            'error': 'Internal server error',
            'message': str(e)
        }), 500


@app.route('/api/elevenlabs', methods=['POST'])
async def elevenlabs_proxy():
    try:
        body = request.get_json(silent=True) or {}
        logger.info(f"Speech request: {body.get('action')}")
        result = await voice_service.handle(
            body.get('action'),
            text=body.get('text'),
            audio_data=body.get('audioData'),
            content_type=body.get('contentType')
        )
        return jsonify(result), 200
    except AppError as e:
        logger.error(f"Speech request failed: {e.message}")
        return jsonify({'error': e.user_message}), e.status_code
    except Exception as e:
        logger.error(f"ElevenLabs API Error: {str(e)}", exc_info=True)
        return jsonify({'error': 'Internal server error'}), 500


@app.route('/api/profiles/on-signup', methods=['POST'])
def profile_on_signup():
    payload = request.get_json(silent=True) or {}
    event_type = payload.get('type')
    table = payload.get('table')

    if event_type != 'INSERT' or table != 'users':
        logger.info(f"Ignoring event: {event_type} on {table}")
        return jsonify({'message': 'Event not processed', 'type': event_type, 'table': table}), 200

    # Always 200 so the auth trigger never fails the signup
    try:
        if profile_service.supabase is None:
            raise ConfigurationError('Database connection not configured')
        result = profile_service.create_profile_on_signup(payload.get('record') or {})
        logger.info(f"User registration completed successfully: {result['data']['user_id']}")
        return jsonify(result), 200
    except Exception as e:
        logger.error(f"Error in profile signup hook: {str(e)}", exc_info=True)
        return jsonify(ProfileService.signup_failure(e, include_debug=settings.is_development)), 200


@app.route('/api/profiles/<user_id>', methods=['GET'])
async def get_profile(user_id):
    if profile_service.supabase is None:
        raise ConfigurationError('Database connection not configured')

    profile = await profile_service.fetch_profile_with_retry(user_id)
    if profile is None:
        raise NotFoundError('Profile not found')
    return jsonify({'success': True, 'profile': profile})
