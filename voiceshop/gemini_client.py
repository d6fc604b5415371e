from __future__ import annotations

from typing import Dict, Optional, Protocol

import google.generativeai as genai

from .config import Settings

DEFAULT_SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]


class LLMClient(Protocol):
    """Anything that turns an instruction plus a user utterance into raw text."""

    def complete(self, prompt: str, message: str) -> str:
        ...


class GeminiClient:
    """Thin wrapper around the Gemini SDK with model caching and a per-call timeout."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize the model cache.
        Inputs/Outputs: Settings supplies key, default model, and timeout; returns nothing.
        Side Effects / State: Sets the process-wide SDK key; builds the default model.
        Dependencies: google.generativeai, config.Settings.
        Failure Modes: Raises ValueError if the API key or model name is missing.
        If Removed: Intent classification has no upstream model and every turn falls back.
        Testing Notes: Validate that a missing key raises ValueError.
        """
        # One SDK-wide key; models are created lazily per name.
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._timeout = settings.llm_timeout_sec
        self._models: Dict[str, genai.GenerativeModel] = {}
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._default_model:
            raise ValueError("Gemini model name is required")
        self._models[self._default_model] = genai.GenerativeModel(self._default_model)

    def complete(
        self,
        prompt: str,
        message: str,
        model: Optional[str] = None,
        temperature: float = 0.1,
        max_output_tokens: int = 300,
    ) -> str:
        """Purpose: Classify one utterance by sending the instruction plus the message.
        Inputs/Outputs: Inputs are the system instruction and the latest user message;
            returns the model's raw text (expected, not guaranteed, to be JSON).
        Side Effects / State: Creates and caches a model object on first use of a name.
        Dependencies: Uses genai.GenerativeModel.generate_content with request_options.
        Failure Modes: Timeouts and API errors propagate; blocked replies return "".
        If Removed: The intent bridge has nothing to parse.
        Testing Notes: Replace with a fake LLMClient in tests; no network calls.
        """
        model_name = _normalize_model_name(model) if model else self._default_model
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)
        contents = f'{prompt}\nUser message: "{message}"\nJSON:'
        response = self._models[model_name].generate_content(
            contents,
            generation_config={
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            },
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            request_options={"timeout": self._timeout},
        )
        try:
            text: Optional[str] = response.text
        except ValueError:
            # Raised by the SDK when the candidate was blocked or empty.
            return ""
        return (text or "").strip()


def _normalize_model_name(name: Optional[str]) -> str:
    """Strip a "models/" prefix and surrounding whitespace from a model name."""
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
