"""
AI text and code operations proxied to a chat-completions gateway.

Each operation type maps to a system prompt and a user prompt template.
Successful calls are recorded as completed ``ai_<type>`` jobs.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from omegaconf import DictConfig

from .conversion_service import ConversionService, require_identity
from .errors import (
    ConversionFailure,
    CreditsExhausted,
    InfrastructureFailure,
    NotConfigured,
    RateLimited,
    ValidationError,
)
from .key_manager import Identity
from .models import AIConvertResponse, AIOptions

logger = logging.getLogger(__name__)

AI_JOB_PREFIX = "ai_"

SYSTEM_PROMPTS: Dict[str, str] = {
    "text_enhance": (
        "You are a professional text editor. Enhance the given text by improving grammar, "
        "clarity, and readability while maintaining the original meaning and tone."
    ),
    "text_summarize": (
        "You are an expert at creating concise summaries. Summarize the given text while "
        "preserving key information and main points."
    ),
    "text_paraphrase": (
        "You are a skilled writer. Rewrite the given text using different words and sentence "
        "structures while maintaining the same meaning."
    ),
    "text_translate": (
        "You are a professional translator. Translate the given text to {target_language} "
        "accurately while maintaining context and tone."
    ),
    "code_explain": (
        "You are a senior software developer. Explain the given code in simple terms, "
        "describing what it does, how it works, and any important concepts."
    ),
    "code_optimize": (
        "You are an expert programmer. Analyze the given code and suggest optimizations for "
        "performance, readability, and best practices."
    ),
    "content_generate": (
        "You are a creative content writer. Generate high-quality {content_type} content that "
        "is engaging, informative, and well-structured."
    ),
    "image_describe": (
        "You are an AI that can analyze images. Describe what you see in the image in detail, "
        "including objects, people, colors, composition, and any text present."
    ),
    "ai_query": (
        "You are a helpful AI assistant specializing in conversions, calculations, and analysis. "
        "You can help with unit conversions, currency calculations, file analysis, mathematical "
        "computations, and general queries. Provide clear, accurate, and helpful responses. When "
        "dealing with conversions, always show the calculation steps and provide the exact result."
    ),
}

USER_PROMPTS: Dict[str, str] = {
    "text_enhance": "Please enhance this text: {content}",
    "text_summarize": "Please summarize this text: {content}",
    "text_paraphrase": "Please paraphrase this text: {content}",
    "text_translate": "Please translate this text to {target_language}: {content}",
    "code_explain": "Please explain this code: {content}",
    "code_optimize": "Please optimize this code: {content}",
    "content_generate": "Please create a {content_type} about: {topic}",
    "image_describe": "Please describe this image in detail.",
    "ai_query": "{content}",
}


def build_messages(ai_type: str, content: str, options: AIOptions) -> List[Dict[str, Any]]:
    """
    Build the chat messages for an operation.

    Raises:
        ValidationError: If ``ai_type`` is not a supported operation
    """
    if ai_type not in SYSTEM_PROMPTS:
        raise ValidationError(details=[f"Unsupported AI conversion type '{ai_type}'"])

    fields = {
        "content": content,
        "target_language": options.targetLanguage or "Spanish",
        "content_type": options.contentType or "blog post",
        "topic": options.topic or content,
    }
    system_prompt = SYSTEM_PROMPTS[ai_type].format(**fields)
    user_prompt = USER_PROMPTS[ai_type].format(**fields)

    user_message: Dict[str, Any] = {"role": "user", "content": user_prompt}
    if ai_type == "image_describe" and content.startswith("data:image"):
        user_message["content"] = [
            {"type": "text", "text": user_prompt},
            {"type": "image_url", "image_url": {"url": content, "detail": "high"}},
        ]

    return [{"role": "system", "content": system_prompt}, user_message]


class AIService:
    def __init__(
        self,
        conversions: ConversionService,
        api_key: str,
        base_url: str,
        model: str,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        timeout_seconds: float = 60,
        transport: Optional[httpx.BaseTransport] = None,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.conversions = conversions
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self.timer = timer

    @classmethod
    def from_config(
        cls,
        config: DictConfig,
        conversions: ConversionService,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "AIService":
        ai = config.ai
        return cls(
            conversions=conversions,
            api_key=str(ai.api_key or ""),
            base_url=str(ai.base_url),
            model=str(ai.model),
            max_tokens=int(ai.max_tokens),
            temperature=float(ai.temperature),
            timeout_seconds=float(ai.timeout_seconds),
            transport=transport,
        )

    def _complete(self, messages: List[Dict[str, Any]]) -> Tuple[str, Optional[Dict[str, Any]]]:
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("AI gateway unreachable: %s", exc)
            raise InfrastructureFailure("AI gateway unreachable") from exc

        if response.status_code == 429:
            raise RateLimited()
        if response.status_code == 402:
            raise CreditsExhausted()
        if response.is_error:
            logger.error("AI gateway error %s: %s", response.status_code, response.text)
            raise ConversionFailure("AI processing failed", details=f"AI gateway returned {response.status_code}")

        try:
            data = response.json()
            result = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error("Malformed AI gateway response: %s", exc)
            raise ConversionFailure("AI processing failed", details="Malformed AI gateway response") from exc
        return result, data.get("usage")

    def convert(
        self,
        identity: Optional[Identity],
        ai_type: str,
        content: str,
        options: Optional[AIOptions] = None,
    ) -> AIConvertResponse:
        """
        Run one AI operation for ``identity``.

        Raises:
            Unauthorized: If there is no caller identity
            ValidationError: For an unsupported operation type
            InfrastructureFailure: If the gateway is not configured or unreachable
            RateLimited, CreditsExhausted, ConversionFailure: On gateway errors
        """
        identity = require_identity(identity)
        options = options or AIOptions()
        messages = build_messages(ai_type, content, options)

        if not self.api_key:
            logger.error("AI gateway API key not configured")
            raise NotConfigured("AI service not configured. Please contact support.")

        logger.info("Processing AI conversion: %s for owner: %s", ai_type, identity.owner)
        started = self.timer()
        result, usage = self._complete(messages)
        elapsed = int(round((self.timer() - started) * 1000))

        try:
            self.conversions.record_job(
                identity,
                f"{AI_JOB_PREFIX}{ai_type}",
                {"content": content, "options": options.model_dump(exclude_none=True)},
                {"result": result},
                elapsed,
            )
        except InfrastructureFailure as exc:
            logger.error("Error logging AI conversion for owner %s: %s", identity.owner, exc)

        return AIConvertResponse(success=True, result=result, type=ai_type, usage=usage)
