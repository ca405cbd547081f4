"""
Narrative generator clients.

The graph builders only depend on `NarrativeGenerator`; the concrete client
talks to any OpenAI-compatible chat completion endpoint.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

import requests

from .models import GeneratorConfig
from .prompts import PromptRequest, render_prompt

logger = logging.getLogger(__name__)


class GeneratorError(RuntimeError):
    """Transport, timeout or protocol failure while asking a generator for text."""


class NarrativeGenerator(ABC):
    """Turns a structured prompt request into free text."""

    @abstractmethod
    async def generate(self, request: PromptRequest) -> str:
        """Return the raw response text; raise GeneratorError on failure."""


class ChatCompletionGenerator(NarrativeGenerator):
    def __init__(self, config: GeneratorConfig | None = None):
        self.config = config or GeneratorConfig.from_env()

    def _chat_completion(self, prompt: str) -> str:
        if not self.config.api_key:
            raise GeneratorError("COMPASS_API_KEY not set")
        url = f"{self.config.base_url.rstrip('/')}/chat/completions"
        payload = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": False,
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        r = requests.post(url, json=payload, headers=headers, timeout=self.config.timeout)
        r.raise_for_status()
        data = r.json()
        return data["choices"][0]["message"]["content"] or ""

    async def generate(self, request: PromptRequest) -> str:
        prompt = render_prompt(request)
        logger.debug("Sending %s prompt (%d chars) to %s", request.kind.value, len(prompt), self.config.model)
        try:
            return await asyncio.to_thread(self._chat_completion, prompt)
        except requests.RequestException as e:
            raise GeneratorError(f"Generator request failed: {e}") from e
        except (KeyError, IndexError, TypeError) as e:
            raise GeneratorError(f"Unexpected generator response shape: {e!r}") from e
