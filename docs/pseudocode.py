# Main User Flows
# ==============

# Flow 1: Post-call conversation ingestion
"""
1. Patient finishes a voice check-in with the ElevenLabs agent
   → ElevenLabs posts a signed post_call_transcription event
   → /api/elevenlabs-webhook verifies the HMAC signature
   → Resolves the patient id from the event
   → Confirms a profiles row with role 'patient' exists
   → Stores (or updates) the conversation blob in Supabase

2. Patient submits a text check-in from the app
   → /api/checkin validates patientId and transcript
   → Loads patient context and the last 7 check-ins
   → Analysis Service grades the transcript Green / Yellow / Red
   → Check-in upserted into daily_checkins for today
   → Analysis envelope returned to the app
"""

# Component Breakdown
# =================

class Routes:
    """
    Location: api/routes.py
    Purpose: Flask app, request validation and error mapping
    """
    def elevenlabs_webhook(self):
        # 1. Secret and database configured?
        # 2. Verify ElevenLabs-Signature (or xi-signature)
        # 3. Parse JSON, ignore anything but post_call_transcription
        # 4. Resolve and check patient
        # 5. Store conversation
        ...

    def checkin(self):
        ...


class ConversationService:
    """
    Location: api/services/conversations.py
    Purpose: Store and read vendor conversation blobs
    """
    def resolve_patient_id(self):
        # data.metadata.patient_id
        # data.conversation_initiation_client_data.dynamic_variables.patient_id
        # data.user_id
        # metadata.patient_id
        ...

    def store_conversation(self):
        # Update the row already holding this conversation_id, else insert
        ...

    def summarize(self):
        ...


class AnalysisService:
    """
    Location: api/services/analysis.py
    Purpose: Grade check-in transcripts
    """
    def keyword_analysis(self):
        # Emergency keywords → Red, severe pain or symptoms → Yellow
        ...

    def refine_with_llm(self):
        # Optional OpenAI pass; may escalate, never downgrade
        ...


class AgentService:
    """
    Location: api/services/agents.py
    Purpose: Create agents (via Pica) and start/end/poll conversations
    """
    def create_agent(self):
        ...

    def start_conversation(self):
        ...

    def end_conversation(self):
        # Ending at ElevenLabs is best effort; check-in is still saved
        ...


class VoiceService:
    """
    Location: api/services/voice.py
    Purpose: ElevenLabs text-to-speech, Whisper speech-to-text
    """


class ProfileService:
    """
    Location: api/services/profiles.py
    Purpose: Auth signup hook and profile polling
    """
    def create_profile_on_signup(self):
        # profiles row, then doctors or patients row by role
        ...


# Data Structures
# ==============

class ConversationRecord:
    """
    Supabase Table Structure (conversations)
    """
    id: "UUID"
    patient_id: "UUID → profiles.id"
    conversation_data: "JSON (ElevenLabs event data)"
    created_at: "Timestamp"
    updated_at: "Timestamp"


class DailyCheckin:
    """
    Supabase Table Structure (daily_checkins), unique on (patient_id, checkin_date)
    """
    id: "UUID"
    patient_id: "UUID"
    checkin_date: "Date"
    status: "String"
    patient_notes: "String"
    ai_analysis: "JSON"
    pain_level: "Integer"
    symptoms: "Array[String]"
    medications_taken: "Boolean"
    completed_at: "Timestamp"


# Example Flow
# ===========

"""
When a voice check-in ends:
1. App → /api/conversations/end (best-effort end at ElevenLabs)
2. Check-in row upserted with the conversation summary and metrics
3. ElevenLabs → /api/elevenlabs-webhook with the full transcript
4. Conversation stored; doctors read it through /api/conversations
"""
