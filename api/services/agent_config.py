"""
Agent configuration payloads for the ElevenLabs conversational AI API.

Two flavours exist: the full CareBot check-in agent (``build_carebot_config``)
and the lighter per-patient agent (``build_conversational_config``). Both are
posted verbatim through the Pica passthrough.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

APP_NAME = 'ConnectCare AI'
APP_VERSION = 'ConnectCare AI v1.0.0'

ASR_KEYWORDS = [
    'pain', 'medication', 'surgery', 'doctor', 'help',
    'emergency', 'bleeding', 'fever', 'nausea',
]

CHECKIN_QUESTIONS = [
    "Hello {patient_name}, how are you feeling overall today?",
    "On a scale of 1 to 10, with 1 being no pain and 10 being severe pain, what is your current pain level?",
    "Have you noticed any changes in your pain since yesterday?",
    "How is your mobility today? Are you able to move around as expected?",
    "Have you noticed any changes at your surgical site - any increased redness, swelling, or unusual discharge?",
    "Are you experiencing any nausea, dizziness, or unusual fatigue?",
    "How is your appetite? Are you able to eat and drink normally?",
    "Are you taking your prescribed medications as directed?",
    "Have you had a bowel movement since your surgery? Any concerns with digestion?",
    "Do you have any other symptoms or concerns you'd like to discuss today?",
]

CAREBOT_PROMPT = """
# Personality

You are "CareBot," a compassionate and intelligent AI assistant within the ConnectCare AI mobile application. \
You specialize in post-operative patient care and recovery monitoring. You are empathetic, encouraging, and \
professional, providing comfort and support during patients' recovery journey while maintaining medical accuracy and safety.

# Environment

You are engaging with patients through the ConnectCare AI mobile application as part of their post-operative care \
program. Patients interact with you daily via voice or text for health check-ins. You have access to basic patient \
information including name ({patient_name}), surgery type ({surgery_type}), and surgery date ({surgery_date}). \
Patients are recovering at home and may experience discomfort, mobility limitations, or emotional concerns.

# Tone

Warm, reassuring and encouraging while remaining professional. Use conversational language that's easy to understand. \
Always address patients by their name when known. Provide positive reinforcement for progress and gently guide them \
through challenges. Maintain cultural sensitivity.

# Goal

Conduct daily health check-ins to monitor post-operative recovery and identify potential concerns early:

1. **Initiate Check-in**: Greet the patient warmly by name and introduce yourself as CareBot from ConnectCare AI
2. **Explain Purpose**: Briefly explain that this daily check-in helps monitor recovery
3. **Conduct Assessment**: Ask the following questions, adapting language based on patient responses:

{questions}

4. **Document & Analyze**: Process patient responses for potential red flags or concerning patterns
5. **Provide Guidance**: Offer reassurance, recovery tips, and next steps based on responses
6. **Escalate When Needed**: Use the flagSymptom tool for concerning symptoms requiring medical attention
7. **Close Positively**: Thank the patient and remind them of tomorrow's check-in

# Guardrails

- **Medical Boundaries**: Never provide medical diagnoses, prescribe medications, or override doctor's orders
- **Emergency Protocol**: For serious symptoms (severe pain >8/10, difficulty breathing, excessive bleeding, signs of \
infection), immediately advise contacting their doctor or emergency services
- **Confidentiality**: Maintain strict patient privacy and data security
- **Scope Limitation**: Stay focused on post-operative recovery monitoring; redirect off-topic conversations politely
- **Emotional Support**: If patients express distress, provide comfort while encouraging professional support
- **Question Limits**: Stick to the core assessment questions

# Tools Available

- **flagSymptom**: Alert system for symptoms requiring immediate medical attention
- **Escalation Protocol**: Direct connection to healthcare team for urgent concerns

Remember: you are a bridge between patients and their healthcare team, ensuring no concerning symptom goes unnoticed.
"""

CONVERSATIONAL_PROMPT = """You are a compassionate AI health assistant for ConnectCare AI, designed to conduct daily \
health check-ins for patients recovering from medical procedures.

PATIENT CONTEXT:
- Patient Name: {patient_name}
- Medical Condition: {medical_condition}
- Patient ID: {patient_id}

YOUR ROLE:
You are conducting a daily health check-in to monitor the patient's recovery progress. Be warm, empathetic and \
professional, medically informed but not diagnostic, and focused on gathering accurate health information.

CONVERSATION FLOW:
1. Greet the patient warmly and ask how they're feeling today
2. Ask about pain levels (scale 1-10)
3. Inquire about medication compliance
4. Check on sleep quality and appetite
5. Ask about any concerning symptoms
6. Provide encouragement and next steps

IMPORTANT GUIDELINES:
- Ask one question at a time
- If the patient reports concerning symptoms, advise them to contact their healthcare provider
- Never provide specific medical advice or diagnoses
- End with positive reinforcement and care instructions

You are a supportive health companion, not a replacement for medical professionals."""


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def build_carebot_prompt(
    patient_name: Optional[str] = None,
    surgery_type: Optional[str] = None,
    surgery_date: Optional[str] = None
) -> str:
    name = patient_name or '{{patient_name}}'
    questions = "\n".join(
        f'   - "{question.format(patient_name=name)}"' for question in CHECKIN_QUESTIONS
    )
    return CAREBOT_PROMPT.format(
        patient_name=name,
        surgery_type=surgery_type or '{{surgery_type}}',
        surgery_date=surgery_date or '{{surgery_date}}',
        questions=questions
    )


def build_carebot_config(
    patient_name: Optional[str] = None,
    surgery_type: Optional[str] = None,
    surgery_date: Optional[str] = None,
    custom_prompt: Optional[str] = None,
    voice_id: str = 'cjVigY5qzO86Huf0OWal'
) -> Dict[str, Any]:
    prompt = custom_prompt or build_carebot_prompt(patient_name, surgery_type, surgery_date)
    return {
        'conversation_config': {
            'agent': {
                'prompt': {
                    'prompt': prompt,
                    'llm': 'gemini-2.0-flash-exp',
                    'temperature': 0.3,
                    'max_tokens': 512
                },
                'first_message': (
                    f"Hello {patient_name or 'there'}! I'm CareBot, your personal health assistant from "
                    f"{APP_NAME}. I'm here to check in on your recovery progress today. How are you feeling?"
                ),
                'language': 'en',
                'dynamic_variables': {
                    'dynamic_variable_placeholders': {
                        'patient_name': patient_name or 'Patient',
                        'surgery_type': surgery_type or 'surgery',
                        'surgery_date': surgery_date or 'recent'
                    }
                }
            },
            'asr': {
                'quality': 'high',
                'provider': 'elevenlabs',
                'user_input_audio_format': 'pcm_16000',
                'keywords': list(ASR_KEYWORDS)
            },
            'turn': {
                'turn_timeout': 30000,
                'mode': 'conversational'
            },
            'tts': {
                'voice_id': voice_id,
                'agent_output_audio_format': 'pcm_16000',
                'optimize_streaming_latency': 3,
                'stability': 0.8,
                'similarity_boost': 0.7
            },
            'conversation': {
                'max_duration_seconds': 600,
                'client_events': ['conversation_started', 'conversation_ended', 'agent_response_generated']
            }
        },
        'platform_settings': {
            'auth': {
                'enable_auth': True,
                'allowlist': [
                    {'hostname': 'connectcare.ai'},
                    {'hostname': 'localhost'}
                ]
            },
            'widget': {
                'variant': 'embedded',
                'bg_color': '#F5F5F5',
                'text_color': '#212121',
                'btn_color': '#FF5722',
                'btn_text_color': '#FFFFFF',
                'border_color': '#E0E0E0',
                'focus_color': '#FF5722',
                'border_radius': 12,
                'btn_radius': 8,
                'action_text': 'Start Health Check-in',
                'start_call_text': 'Begin Check-in',
                'end_call_text': 'Complete Check-in',
                'listening_text': 'Listening...',
                'speaking_text': 'CareBot is responding...',
                'language_selector': False
            },
            'data_collection': {
                'pain_level': {
                    'description': "Patient's current pain level (1-10 scale)",
                    'dynamic_variable': 'pain_level'
                },
                'mobility_status': {
                    'description': "Patient's mobility and movement status",
                    'dynamic_variable': 'mobility_status'
                },
                'medication_compliance': {
                    'description': 'Whether patient is taking medications as prescribed',
                    'dynamic_variable': 'medication_compliance'
                },
                'symptoms': {
                    'description': 'Any symptoms or concerns reported by patient',
                    'dynamic_variable': 'symptoms'
                }
            },
            'call_limits': {
                'agent_concurrency_limit': 5,
                'daily_limit': 50
            },
            'privacy': {
                'record_voice': True,
                'retention_days': 30,
                'delete_transcript_and_pii': False,
                'delete_audio': False,
                'apply_to_existing_conversations': True
            },
            'safety': {
                'ivc': {'is_unsafe': False, 'safety_prompt_version': 1},
                'non_ivc': {'is_unsafe': False, 'safety_prompt_version': 1}
            }
        },
        'name': f"{APP_NAME} Agent - {patient_name or 'Patient'} - {_today()}"
    }


def build_conversational_config(
    patient_id: Optional[str] = None,
    patient_name: str = 'Patient',
    medical_condition: str = 'post-surgery recovery',
    custom_prompt: Optional[str] = None,
    voice_id: str = 'cjVigY5qzO86Huf0OWal',
    language: str = 'en'
) -> Dict[str, Any]:
    prompt = custom_prompt or CONVERSATIONAL_PROMPT.format(
        patient_name=patient_name,
        medical_condition=medical_condition,
        patient_id=patient_id or 'Not specified'
    )
    return {
        'conversation_config': {
            'agent': {
                'prompt': {
                    'prompt': prompt,
                    'llm': 'claude-3-5-sonnet',
                    'temperature': 0.3,
                    'max_tokens': 512
                },
                'first_message': (
                    f"Hello {patient_name}! I'm your {APP_NAME} assistant. "
                    "I'm here for your daily health check-in. How are you feeling today?"
                ),
                'language': language
            },
            'asr': {
                'quality': 'high',
                'provider': 'elevenlabs'
            },
            'tts': {
                'voice_id': voice_id,
                'optimize_streaming_latency': 3,
                'stability': 0.7,
                'similarity_boost': 0.8
            },
            'conversation': {
                'max_duration_seconds': 600
            }
        },
        'platform_settings': {
            'auth': {
                'enable_auth': False
            },
            'privacy': {
                'record_voice': True,
                'retention_days': 90,
                'delete_transcript_and_pii': False,
                'delete_audio': False
            }
        },
        'name': f"{APP_NAME} - {patient_name} Daily Check-in"
    }
