import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from openai import OpenAI
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

GREEN = 'Green'
YELLOW = 'Yellow'
RED = 'Red'
SEVERITY = {GREEN: 0, YELLOW: 1, RED: 2}

EMERGENCY_KEYWORDS = [
    'chest pain', 'difficulty breathing', "can't breathe", 'shortness of breath',
    'bleeding', 'unconscious', 'fainted', 'passed out',
]
PAIN_KEYWORDS = ['severe pain', 'unbearable', 'excruciating', "can't handle", 'worst pain']
SYMPTOM_KEYWORDS = [
    'fever', 'nausea', 'vomiting', 'dizziness', 'dizzy', 'swelling',
    'redness', 'discharge', 'infection', 'chills',
]
IMPROVEMENT_KEYWORDS = ['feeling better', 'pain reduced', 'more mobile', 'sleeping well', 'much better']


class LLMAssessment(BaseModel):
    status: str
    risk_score: float = Field(ge=0.0, le=1.0)
    insights: List[str] = []
    recommendations: List[str] = []


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_result() -> Dict[str, Any]:
    """Routine check-in with nothing flagged."""
    return {
        'status': GREEN,
        'confidence': 0.95,
        'riskScore': 0.1,
        'insights': [
            'Patient transcript analyzed successfully',
            'No immediate concerns detected',
            'Continuing with standard monitoring protocol'
        ],
        'recommendations': [
            'Continue current treatment plan',
            'Schedule next routine check-in'
        ],
        'flaggedKeywords': [],
        'sentimentScore': 0.7,
        'analysisTimestamp': _now()
    }


def failure_result() -> Dict[str, Any]:
    return {
        'status': YELLOW,
        'confidence': 0.0,
        'riskScore': 0.5,
        'insights': ['Analysis failed - manual review recommended'],
        'recommendations': ['Contact healthcare provider for manual assessment'],
        'flaggedKeywords': [],
        'sentimentScore': 0.5,
        'analysisTimestamp': _now(),
        'error': 'Analysis service unavailable'
    }


NEGATION_CUES = ['no', 'not', 'never', 'without', 'denies', "don't have", "didn't have", "haven't had"]
NEGATION_WINDOW = 3
CLAUSE_BREAK = re.compile(r"[.,;!?]|\bbut\b")


def _is_negated(lowered: str, start: int) -> bool:
    """A cue in the few words before ``start``, within the same clause."""
    clause = CLAUSE_BREAK.split(lowered[:start])[-1]
    window = ' '.join(clause.split()[-NEGATION_WINDOW:])
    return any(re.search(rf"\b{re.escape(cue)}\b", window) for cue in NEGATION_CUES)


def find_keywords(text: str, keywords: List[str]) -> List[str]:
    """Keywords mentioned at least once without a negation ("no fever") before them."""
    lowered = text.lower()
    found = []
    for keyword in keywords:
        starts = [match.start() for match in re.finditer(re.escape(keyword), lowered)]
        if any(not _is_negated(lowered, start) for start in starts):
            found.append(keyword)
    return found


class AnalysisService:
    def __init__(self, openai_client: Optional[OpenAI] = None, model: str = 'gpt-4o-mini'):
        self.client = openai_client
        self.model = model

    async def analyze(self, transcript: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            result = self.keyword_analysis(transcript)
            if self.client is not None:
                result = await self._refine_with_llm(result, transcript, context)
            return result
        except Exception as e:
            logger.error(f"Error analyzing transcript: {str(e)}", exc_info=True)
            return failure_result()

    def keyword_analysis(self, transcript: str) -> Dict[str, Any]:
        result = default_result()

        emergency = find_keywords(transcript, EMERGENCY_KEYWORDS)
        pain = find_keywords(transcript, PAIN_KEYWORDS)
        symptoms = find_keywords(transcript, SYMPTOM_KEYWORDS)
        improvement = find_keywords(transcript, IMPROVEMENT_KEYWORDS)

        if emergency:
            result.update({
                'status': RED,
                'confidence': 0.8,
                'riskScore': 0.9,
                'insights': [f"Emergency indicators reported: {', '.join(emergency)}"],
                'recommendations': [
                    'Contact the patient immediately',
                    'Advise emergency services if symptoms persist'
                ],
            })
        elif pain or symptoms:
            insights = []
            if pain:
                insights.append(f"Severe pain reported: {', '.join(pain)}")
            if symptoms:
                insights.append(f"Symptoms mentioned: {', '.join(symptoms)}")
            result.update({
                'status': YELLOW,
                'confidence': 0.75,
                'riskScore': 0.6 if pain else 0.4,
                'insights': insights,
                'recommendations': [
                    'Review check-in with the assigned doctor',
                    'Schedule a follow-up call within 24 hours'
                ],
            })

        if improvement and not emergency:
            result['sentimentScore'] = 0.85
            result['insights'].append(f"Positive progress noted: {', '.join(improvement)}")
        elif emergency or pain:
            result['sentimentScore'] = 0.3

        result['flaggedKeywords'] = emergency + pain + symptoms
        return result

    def _build_prompt(self, transcript: str, context: Optional[Dict[str, Any]]) -> List[Dict[str, str]]:
        system_prompt = (
            "You review daily post-operative check-in transcripts for a care team. "
            "Classify the patient's status as Green (routine), Yellow (needs review) or Red (urgent). "
            "Never diagnose. Respond with a JSON object with keys: "
            "status, risk_score (0-1), insights (list of strings), recommendations (list of strings)."
        )
        user_content = f"Transcript:\n{transcript}"
        if context:
            user_content += f"\n\nPatient context:\n{json.dumps(context, default=str)}"
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content}
        ]

    async def _refine_with_llm(
        self,
        result: Dict[str, Any],
        transcript: str,
        context: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Let the model escalate the keyword result; it can never downgrade it."""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=self._build_prompt(transcript, context),
                response_format={"type": "json_object"},
                max_tokens=400
            )
            assessment = LLMAssessment.model_validate_json(response.choices[0].message.content)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Unusable LLM assessment, keeping keyword result: {str(e)}")
            return result
        except Exception as e:
            logger.warning(f"LLM analysis failed, keeping keyword result: {str(e)}")
            return result

        status = assessment.status.capitalize()
        if status not in SEVERITY:
            logger.warning(f"LLM returned unknown status {assessment.status!r}")
            return result

        refined = dict(result)
        refined['insights'] = result['insights'] + assessment.insights
        if SEVERITY[status] > SEVERITY[result['status']]:
            logger.info(f"LLM escalated check-in from {result['status']} to {status}")
            refined['status'] = status
            refined['recommendations'] = assessment.recommendations or result['recommendations']
        refined['riskScore'] = max(result['riskScore'], assessment.risk_score)
        return refined
