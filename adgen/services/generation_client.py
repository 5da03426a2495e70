"""
Generative text and image collaborators.

`OpenAIGenerationClient` covers both contracts the orchestrator needs:

- `generate_text(system_prompt, user_prompt) -> str` returns the raw model
  output, which `decode_copy_response` turns into `CopyVariant` objects.
- `generate_image(prompt, size) -> str` returns the URL of one generated
  image.

Provider failures surface as `CollaboratorError`. Nothing is retried here.
"""

from __future__ import annotations

import json
import logging
import re
from typing import List, Protocol

import openai
from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from adgen.services.errors import CollaboratorError, PromptTooLong
from adgen.services.prompts import MAX_PROMPT_LENGTH
from adgen.services.rate_limiter import GenerationRateLimiter, get_rate_limiter


logger = logging.getLogger(__name__)

TEXT_SERVICE = "Text generation"
IMAGE_SERVICE = "Image generation"

RATE_LIMIT_TIMEOUT = 30.0

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class CopyVariant(BaseModel):
    """One ad copy concept as returned by the text model."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    variant_id: str = Field(default="A")
    headline: str
    subheadline: str
    call_to_action: str
    image_prompt: str = ""
    reasoning: str = ""


class CopyResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    variants: List[CopyVariant] = Field(default_factory=list)


def decode_copy_response(text: str | None) -> List[CopyVariant]:
    """
    Normalize raw model output into validated copy variants.

    The model sometimes wraps its JSON in prose or code fences, so the
    outermost `{...}` span is decoded. Raises `CollaboratorError` when nothing
    usable is found.
    """
    if not text:
        raise CollaboratorError(TEXT_SERVICE, "empty response")
    match = _JSON_OBJECT_RE.search(text)
    if match is None:
        raise CollaboratorError(TEXT_SERVICE, "response did not contain a JSON object")
    try:
        parsed = CopyResponse.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        logger.error("Failed to parse text generation response: %s", exc)
        raise CollaboratorError(TEXT_SERVICE, f"unparseable response ({exc.__class__.__name__})") from exc
    if not parsed.variants:
        raise CollaboratorError(TEXT_SERVICE, "response contained no ad variants")
    return parsed.variants


class TextGenerator(Protocol):
    def generate_text(self, system_prompt: str, user_prompt: str) -> str: ...


class ImageGenerator(Protocol):
    def generate_image(self, prompt: str, size: str) -> str: ...


class OpenAIGenerationClient:
    """OpenAI-backed implementation of both generation collaborators."""

    def __init__(
        self,
        api_key: str | None,
        text_model: str = "gpt-4o",
        image_model: str = "dall-e-3",
        rate_limiter: GenerationRateLimiter | None = None,
        client: OpenAI | None = None,
    ) -> None:
        self.text_model = text_model
        self.image_model = image_model
        self._rate_limiter = rate_limiter or get_rate_limiter()
        if client is not None:
            self._client = client
        elif api_key:
            self._client = OpenAI(api_key=api_key)
        else:
            logger.warning("OPENAI_API_KEY not set. Ad generation will fail until it is configured.")
            self._client = None

    def _require_client(self, service: str) -> OpenAI:
        if self._client is None:
            raise CollaboratorError(service, "OpenAI API key not configured")
        return self._client

    def _acquire(self, service: str) -> None:
        if not self._rate_limiter.acquire(timeout=RATE_LIMIT_TIMEOUT):
            raise CollaboratorError(service, "rate limiter timeout")

    def _failed(self, service: str, exc: Exception) -> CollaboratorError:
        if isinstance(exc, openai.RateLimitError):
            self._rate_limiter.report_429()
        status = getattr(exc, "status_code", None)
        detail = f"{exc.__class__.__name__} ({status}): {exc}" if status else f"{exc.__class__.__name__}: {exc}"
        logger.error("%s failed: %s", service, detail)
        return CollaboratorError(service, str(exc))

    def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        client = self._require_client(TEXT_SERVICE)
        self._acquire(TEXT_SERVICE)
        logger.info("Calling text model %s (%d prompt characters)", self.text_model, len(user_prompt))
        try:
            response = client.chat.completions.create(
                model=self.text_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=2000,
                temperature=0.8,
            )
        except openai.OpenAIError as exc:
            raise self._failed(TEXT_SERVICE, exc) from exc

        self._rate_limiter.report_success()
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise CollaboratorError(TEXT_SERVICE, "no content in response")
        return content

    def generate_image(self, prompt: str, size: str) -> str:
        if len(prompt) > MAX_PROMPT_LENGTH:
            raise PromptTooLong(len(prompt), MAX_PROMPT_LENGTH)
        client = self._require_client(IMAGE_SERVICE)
        self._acquire(IMAGE_SERVICE)
        logger.info("Calling image model %s at %s (%d prompt characters)", self.image_model, size, len(prompt))
        try:
            response = client.images.generate(model=self.image_model, prompt=prompt, size=size, n=1)
        except openai.OpenAIError as exc:
            raise self._failed(IMAGE_SERVICE, exc) from exc

        self._rate_limiter.report_success()
        url = response.data[0].url if response.data else None
        if not url:
            raise CollaboratorError(IMAGE_SERVICE, "response contained no image URL")
        return url
