import json
import logging
from functools import lru_cache
from typing import List
import google.generativeai as genai
from pydantic import ValidationError
from medisync.config import GEMINI_API_KEY, GEMINI_MODEL_NAMES
from medisync.errors import CollaboratorUnavailable
from medisync.models import (
    Patient,
    PrescriptionSuggestion,
    ShiftSummary,
    SuggestionRequest,
    TranscriptExtraction,
)
from medisync.utils.ai_prompt import EXTRACTION_PROMPT, PRESCRIPTION_PROMPT, SHIFT_SUMMARY_PROMPT
from medisync.utils.helpers import safe_parse_json_block


logger = logging.getLogger(__name__)

JSON_RESPONSE = {"response_mime_type": "application/json"}


@lru_cache(maxsize=1)
def load_gemini_model():
    """Return the first Gemini model that answers, or None when AI is disabled."""
    if not GEMINI_API_KEY:
        logger.warning("Gemini API key not found. AI functionality will be disabled.")
        return None

    genai.configure(api_key=GEMINI_API_KEY)
    for model_name in GEMINI_MODEL_NAMES:
        try:
            model = genai.GenerativeModel(model_name)
            # Test the model with a simple prompt
            model.generate_content("Hello, this is a test.")
            logger.info(f"Gemini model {model_name} initialized successfully")
            return model
        except Exception as e:
            logger.warning(f"Error initializing Gemini model {model_name}: {e}")
            continue

    logger.error("Failed to initialize any Gemini model")
    return None


class GeminiCollaborator:
    """Shared request/response plumbing: prompt in, JSON object out."""

    name = "gemini"

    def __init__(self, model=None):
        self._model = model

    @property
    def model(self):
        return self._model if self._model is not None else load_gemini_model()

    async def _generate_json(self, prompt: str) -> dict:
        model = self.model
        if model is None:
            raise CollaboratorUnavailable(f"{self.name}: no Gemini model configured")
        try:
            response = await model.generate_content_async(prompt, generation_config=JSON_RESPONSE)
            text = response.text
        except Exception as e:
            logger.error(f"{self.name} call failed: {e}")
            raise CollaboratorUnavailable(f"{self.name} call failed: {e}") from e

        logger.info(f"{self.name} response: {text}")
        data = safe_parse_json_block(text)
        if not isinstance(data, dict):
            raise CollaboratorUnavailable(f"{self.name} returned no JSON object")
        return data


class TranscriptExtractor(GeminiCollaborator):
    name = "transcript extraction"

    async def extract(self, transcript: str, current_date: str) -> TranscriptExtraction:
        prompt = EXTRACTION_PROMPT.format(transcript=transcript, current_date=current_date)
        data = await self._generate_json(prompt)
        try:
            return TranscriptExtraction.model_validate(data)
        except ValidationError as e:
            raise CollaboratorUnavailable(f"Unexpected extraction payload: {e}") from e


class PrescriptionSuggester(GeminiCollaborator):
    name = "prescription suggestion"

    async def suggest(self, request: SuggestionRequest) -> PrescriptionSuggestion:
        prompt = PRESCRIPTION_PROMPT.format(
            doctor=f"Dr. {request.doctor_name}" if request.doctor_name else "the attending doctor",
            symptoms=request.symptoms,
            diagnosis=request.diagnosis,
            history=request.patient_history or "N/A",
            prior_prescriptions="\n---\n".join(request.prior_prescriptions) or "None",
        )
        data = await self._generate_json(prompt)
        if data.get("medications") is None:
            data["medications"] = []
        try:
            suggestion = PrescriptionSuggestion.model_validate(data)
        except ValidationError as e:
            raise CollaboratorUnavailable(f"Unexpected suggestion payload: {e}") from e
        if suggestion.is_empty():
            raise CollaboratorUnavailable("Suggestion had no medications and no explanation")
        return suggestion


class ShiftSummarizer(GeminiCollaborator):
    name = "shift summary"

    async def summarize(self, doctor_name: str, shift_date: str, patients: List[Patient]) -> ShiftSummary:
        records = [
            {
                "name": p.name,
                "age": p.age,
                "diagnosis": p.diagnosis,
                "prescriptions": p.prescriptions or [],
            }
            for p in patients
        ]
        prompt = SHIFT_SUMMARY_PROMPT.format(
            doctor_name=doctor_name,
            shift_date=shift_date,
            patient_records=json.dumps(records, indent=2),
        )
        data = await self._generate_json(prompt)
        try:
            return ShiftSummary.model_validate(data)
        except ValidationError as e:
            raise CollaboratorUnavailable(f"Unexpected summary payload: {e}") from e
