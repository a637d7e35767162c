"""Gateways to the hosted generative models used for translation and pseudo-compilation.

The model is an external collaborator: nothing here validates what it returns. Callers
get plain text back or a ``ModelGatewayError``; no call is retried.
"""
from __future__ import annotations

import logging
import re
from typing import Protocol

import httpx
from openai import OpenAI, OpenAIError

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

GEMINI_API_BASE = 'https://generativelanguage.googleapis.com/v1beta'


class ModelGatewayError(Exception):
    def __init__(self, detail: str, status_code: int = 502) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class ModelGateway(Protocol):
    def complete(self, *, system: str, prompt: str, json_mode: bool = False) -> str:
        ...


def strip_code_fences(text: str, language: str = '') -> str:
    """Drop markdown fences (```lang and bare ```) anywhere in the text and trim it."""
    pattern = r'```' + re.escape(language) + r'|```' if language else r'```'
    return re.sub(pattern, '', text or '').strip()


class OpenAIGateway:
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        timeout_seconds: int = 120,
        client: OpenAI | None = None
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise ModelGatewayError('OpenAI API key is not configured', status_code=503)
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout_seconds, max_retries=0)
        return self._client

    def complete(self, *, system: str, prompt: str, json_mode: bool = False) -> str:
        client = self._get_client()
        kwargs: dict = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': system},
                {'role': 'user', 'content': prompt}
            ],
            'temperature': self.temperature,
            'max_tokens': self.max_tokens
        }
        if json_mode:
            kwargs['response_format'] = {'type': 'json_object'}

        try:
            response = client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            logger.warning('openai completion failed model=%s: %s', self.model, exc)
            raise ModelGatewayError(str(exc)) from exc

        if not response.choices:
            return ''
        return (response.choices[0].message.content or '').strip()


class GeminiGateway:
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        timeout_seconds: int = 120,
        http_client: httpx.Client | None = None
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    def _post(self, url: str, payload: dict) -> httpx.Response:
        params = {'key': self.api_key}
        if self._http_client is not None:
            return self._http_client.post(url, params=params, json=payload)
        with httpx.Client(timeout=self.timeout_seconds) as client:
            return client.post(url, params=params, json=payload)

    def complete(self, *, system: str, prompt: str, json_mode: bool = False) -> str:
        if not self.api_key:
            raise ModelGatewayError('Gemini API key is not configured', status_code=503)

        generation_config: dict = {
            'temperature': self.temperature,
            'maxOutputTokens': self.max_tokens
        }
        if json_mode:
            generation_config['responseMimeType'] = 'application/json'

        payload = {
            'systemInstruction': {'parts': [{'text': system}]},
            'contents': [{'role': 'user', 'parts': [{'text': prompt}]}],
            'generationConfig': generation_config
        }
        url = f'{GEMINI_API_BASE}/models/{self.model}:generateContent'

        try:
            response = self._post(url, payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            logger.warning('gemini completion failed model=%s: %s', self.model, exc)
            raise ModelGatewayError(str(exc)) from exc
        except ValueError as exc:
            raise ModelGatewayError(f'Gemini returned a non-JSON response: {exc}') from exc

        candidates = data.get('candidates') if isinstance(data, dict) else None
        if not isinstance(candidates, list) or not candidates:
            return ''
        content = candidates[0].get('content') if isinstance(candidates[0], dict) else None
        parts = content.get('parts', []) if isinstance(content, dict) else []
        return ''.join(str(part.get('text', '')) for part in parts if isinstance(part, dict)).strip()


def build_gateway(settings: Settings | None = None) -> ModelGateway:
    settings = settings or get_settings()
    if settings.model_provider == 'gemini':
        return GeminiGateway(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            temperature=settings.model_temperature,
            max_tokens=settings.model_max_tokens,
            timeout_seconds=settings.model_timeout_seconds
        )
    return OpenAIGateway(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        temperature=settings.model_temperature,
        max_tokens=settings.model_max_tokens,
        timeout_seconds=settings.model_timeout_seconds
    )
