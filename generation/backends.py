"""Generative model backends: a prompt goes in, raw text comes out"""

import logging

import openai
import requests
from google import genai
from google.genai import types

from config.settings import Settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert exam question creator. You generate high-quality assessment questions "
    "based on the provided context from textbooks. Questions must be directly answerable "
    "from the given context. Return responses in strict JSON format."
)


class BackendError(Exception):
    """The generative provider could not be reached or returned no usable text"""


class OpenAIBackend:
    """OpenAI chat completions in JSON mode"""

    name = "openai"

    def __init__(self, api_key: str, model: str, temperature: float, timeout: float):
        self.client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.temperature = temperature

    def generate(self, prompt: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise BackendError(f"OpenAI API call failed: {e}") from e

        content = response.choices[0].message.content
        if not content:
            raise BackendError("OpenAI returned an empty completion")
        return content


class GeminiBackend:
    """Google Gemini through the google-genai SDK"""

    name = "gemini"

    def __init__(self, api_key: str, model: str, temperature: float, timeout: float):
        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )
        self.model = model
        self.config = types.GenerateContentConfig(
            temperature=temperature,
            top_k=40,
            top_p=0.95,
            max_output_tokens=1024,
            system_instruction=SYSTEM_PROMPT,
        )

    def generate(self, prompt: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=self.config,
            )
            text = response.text
        except Exception as e:
            raise BackendError(f"Gemini API call failed: {e}") from e

        if not text:
            raise BackendError("No candidates in Gemini response")
        return text


class OllamaBackend:
    """A local Ollama server's /api/generate endpoint"""

    name = "ollama"

    def __init__(self, base_url: str, model: str, temperature: float, timeout: float):
        self.url = f"{base_url.rstrip('/')}/api/generate"
        self.model = model
        self.temperature = temperature
        self.timeout = timeout

    def generate(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "system": SYSTEM_PROMPT,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"temperature": self.temperature},
        }
        try:
            resp = requests.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise BackendError(f"Ollama call failed: {e}") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not text:
            raise BackendError("Ollama returned an empty response")
        return text


def create_backend(settings: Settings):
    """Build the backend selected by GENERATION_BACKEND"""
    if settings.generation_backend == "openai":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY not found in environment variables")
        backend = OpenAIBackend(
            settings.openai_api_key, settings.llm_model, settings.temperature, settings.generation_timeout_s
        )
    elif settings.generation_backend == "gemini":
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY not found in environment variables")
        backend = GeminiBackend(
            settings.gemini_api_key, settings.gemini_model, settings.temperature, settings.generation_timeout_s
        )
    elif settings.generation_backend == "ollama":
        backend = OllamaBackend(
            settings.ollama_base_url, settings.ollama_model, settings.temperature, settings.generation_timeout_s
        )
    else:
        raise ValueError(f"Unknown generation backend: {settings.generation_backend}")

    logger.info(f"Using {backend.name} generation backend")
    return backend
