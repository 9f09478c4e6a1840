"""
HTTP client for an OpenAI-compatible chat-completions endpoint.

The assembled prompt is the whole contract: it is sent as a single user
message and the first choice's content is returned unparsed.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:8000"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 60


class TextServiceError(RuntimeError):
    """Raised when the text service cannot produce a reply."""


@dataclass
class GenerativeTextClient:
    url: str = DEFAULT_URL
    model: str = DEFAULT_MODEL
    api_key: Optional[str] = None
    timeout: int = DEFAULT_TIMEOUT
    max_tokens: int = 1500
    temperature: float = 0.7

    @classmethod
    def from_env(cls) -> "GenerativeTextClient":
        """Build a client from LLM_API_URL, LLM_MODEL, LLM_API_KEY and LLM_TIMEOUT."""
        try:
            timeout = int(os.getenv("LLM_TIMEOUT", str(DEFAULT_TIMEOUT)))
        except ValueError:
            logger.warning(f"Invalid LLM_TIMEOUT, using default {DEFAULT_TIMEOUT}")
            timeout = DEFAULT_TIMEOUT
        return cls(
            url=os.getenv("LLM_API_URL", DEFAULT_URL).rstrip("/"),
            model=os.getenv("LLM_MODEL", DEFAULT_MODEL),
            api_key=os.getenv("LLM_API_KEY") or None,
            timeout=timeout,
        )

    def generate(self, prompt: str) -> str:
        """
        Send a prompt and return the reply text.

        Raises:
            TextServiceError: If the service is unreachable, times out or
                returns an unusable response.
        """
        url = f"{self.url}/v1/chat/completions"
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        try:
            response = requests.post(url, json=payload, timeout=self.timeout, headers=headers)
            response.raise_for_status()
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except requests.exceptions.ConnectionError as e:
            raise TextServiceError(f"Cannot connect to text service at {self.url}: {e}") from e
        except requests.exceptions.Timeout as e:
            raise TextServiceError(f"Text service request timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise TextServiceError(f"Text service call failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise TextServiceError(f"Unexpected text service response: {e}") from e
