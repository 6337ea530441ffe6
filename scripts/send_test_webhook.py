"""Sign a sample post-call transcription and post it to a running server.

    python -m scripts.send_test_webhook --patient-id <profile uuid>
"""
import argparse
import json
import uuid

import requests

from lib.config import get_settings
from lib.signature import compute_signature, sign_payload


def build_sample_event(patient_id: str, conversation_id: str) -> dict:
    return {
        'type': 'post_call_transcription',
        'event_timestamp': 1739537297,
        'data': {
            'agent_id': 'test-agent',
            'conversation_id': conversation_id,
            'status': 'done',
            'transcript': [
                {'role': 'agent', 'message': 'Hello! How are you feeling today?', 'time_in_call_secs': 0},
                {'role': 'user', 'message': 'A bit sore, but feeling better than yesterday.', 'time_in_call_secs': 4},
                {'role': 'agent', 'message': 'Glad to hear it. What is your pain level from 1 to 10?', 'time_in_call_secs': 9},
                {'role': 'user', 'message': 'About a three.', 'time_in_call_secs': 14},
            ],
            'metadata': {
                'patient_id': patient_id,
                'start_time_unix_secs': 1739537297,
                'call_duration_secs': 150
            },
            'analysis': {
                'call_successful': 'success',
                'transcript_summary': 'Patient reports mild soreness, pain 3/10, improving.',
                'key_topics': ['pain', 'recovery']
            }
        }
    }


def send_test_webhook(url: str, patient_id: str, conversation_id: str, legacy: bool = False):
    settings = get_settings()
    if not settings.elevenlabs_webhook_secret:
        raise SystemExit("ELEVENLABS_WEBHOOK_SECRET is not set")

    body = json.dumps(build_sample_event(patient_id, conversation_id))
    if legacy:
        header = f"sha256={compute_signature(settings.elevenlabs_webhook_secret, body)}"
    else:
        header = sign_payload(body, settings.elevenlabs_webhook_secret)

    print(f"Posting conversation {conversation_id} to {url}...")
    response = requests.post(
        url,
        data=body,
        headers={
            'Content-Type': 'application/json',
            'ElevenLabs-Signature': header
        },
        timeout=settings.request_timeout
    )
    print(f"Status: {response.status_code}")
    print(response.text)
    return response


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument('--url', default='http://localhost:8000/api/elevenlabs-webhook')
    parser.add_argument('--patient-id', required=True)
    parser.add_argument('--conversation-id', default=None)
    parser.add_argument('--legacy', action='store_true', help='use the sha256=<hex> header format')
    args = parser.parse_args()

    send_test_webhook(
        args.url,
        args.patient_id,
        args.conversation_id or f"conv_{uuid.uuid4().hex[:12]}",
        legacy=args.legacy
    )
