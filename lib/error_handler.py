from typing import Optional
import logging

logger = logging.getLogger(__name__)

class AppError(Exception):
    def __init__(self, message: str, status_code: int = 500, user_message: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.user_message = user_message or "An error occurred. Please try again later."
        super().__init__(self.message)

class ConfigurationError(AppError):
    """A required secret or connection setting is missing."""
    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message, status_code=500, user_message=user_message or message)

class SignatureError(AppError):
    def __init__(self, message: str, user_message: str = "Invalid signature"):
        super().__init__(message, status_code=401, user_message=user_message)

class ValidationError(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400, user_message=message)

class NotFoundError(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=404, user_message=message)

class UpstreamError(AppError):
    """Non-2xx response from ElevenLabs or the Pica passthrough."""
    def __init__(self, service: str, status: int, body: str):
        self.service = service
        self.upstream_status = status
        self.body = body
        super().__init__(
            f"{service} API error: {status} - {body}",
            status_code=502,
            user_message=f"{service} request failed"
        )

class ErrorHandler:
    @staticmethod
    def handle_webhook_error(error: Exception) -> dict:
        logger.error(f"Webhook processing error: {str(error)}", exc_info=True)
        return {'error': 'Internal server error'}

    @staticmethod
    def handle_checkin_error(error: Exception, include_details: bool = False) -> dict:
        logger.error(f"Error processing check-in: {str(error)}", exc_info=True)
        body = {
            'error': 'Internal Server Error',
            'message': 'An error occurred while processing the check-in data'
        }
        if include_details:
            body['details'] = str(error)
        return body

    @staticmethod
    def handle_agent_error(error: Exception, timestamp: str) -> dict:
        logger.error(f"Conversational agent error: {str(error)}")
        return {
            'success': False,
            'error': str(error),
            'timestamp': timestamp
        }
