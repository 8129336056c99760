"""Thin wrapper around the OpenAI chat API used for classification and summaries."""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, Optional

from openai import APIStatusError, OpenAI
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from devops_content.config import AIConfig

logger = logging.getLogger("devops_content.digest.ai")

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class AIConfigurationError(RuntimeError):
    """Raised when the OpenAI client cannot be created."""


class AIResponseError(ValueError):
    """Raised when the model reply is empty or not the JSON we asked for."""


def _is_retryable(exc: BaseException) -> bool:
    # client errors are final, except rate limiting
    if isinstance(exc, APIStatusError):
        return exc.status_code == 429 or exc.status_code >= 500
    return True


class ChatModel:
    def __init__(self, config: AIConfig, client: Optional[Any] = None, backoff: float = 1.0) -> None:
        self.config = config
        self.backoff = backoff
        self._client = client

    @property
    def client(self) -> Any:
        """Get or create the OpenAI client (lazy initialization)."""

        if self._client is None:
            api_key = os.environ.get(self.config.api_key_env)
            if not api_key:
                raise AIConfigurationError(f"{self.config.api_key_env} environment variable is required")
            self._client = OpenAI(api_key=api_key)
        return self._client

    def chat(self, system_prompt: str, user_prompt: str, json_mode: bool = False) -> str:
        request: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_completion_tokens": self.config.max_completion_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}
        client = self.client
        retryer = Retrying(
            stop=stop_after_attempt(self.config.max_retries),
            wait=wait_exponential(multiplier=self.backoff, max=10),
            retry=retry_if_exception(_is_retryable),
            before_sleep=lambda state: logger.error(
                "OpenAI API error (attempt %d/%d): %s",
                state.attempt_number,
                self.config.max_retries,
                state.outcome.exception(),
            ),
            reraise=True,
        )
        for attempt in retryer:
            with attempt:
                response = client.chat.completions.create(**request)
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return choices[0].message.content or ""

    def chat_json(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        reply = self.chat(system_prompt, user_prompt, json_mode=True)
        return parse_json_reply(reply)


def parse_json_reply(reply: str) -> Dict[str, Any]:
    if not reply or not reply.strip():
        raise AIResponseError("Empty response from OpenAI")
    try:
        data = json.loads(reply)
    except json.JSONDecodeError:
        # models sometimes wrap the object in prose or a code fence
        match = JSON_OBJECT_RE.search(reply)
        if not match:
            raise AIResponseError("No JSON object found in response") from None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse JSON response: %s", reply[:200])
            raise AIResponseError("Invalid JSON response from OpenAI") from exc
    if not isinstance(data, dict):
        raise AIResponseError("Expected a JSON object from OpenAI")
    return data
