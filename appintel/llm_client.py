"""
LLM Client — interface for talking to models through OpenRouter.

Key concepts:
    - System prompt: Sets the model's role and behavior (constant per task).
    - User prompt: The actual question or data (changes per call). Can be a
      list of content parts when images are attached.
    - Temperature: 0 = deterministic, 1 = creative.
    - Raw text out: callers parse the JSON themselves (see assembler.py),
      because models don't always honour a JSON-only instruction.

A failed call doesn't raise. It comes back as an LLMResult with `error` set.
"""

from dataclasses import dataclass
from typing import Optional, Union

from openai import OpenAI, OpenAIError

from appintel.config import Settings


@dataclass
class LLMResult:
    text: Optional[str] = None
    model: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LLMClient:
    def __init__(self, settings: Settings, client: Optional[OpenAI] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> OpenAI:
        """OpenAI SDK client pointed at OpenRouter, created on first use."""
        if self._client is None:
            self._client = OpenAI(api_key=self.settings.api_key, base_url=self.settings.base_url)
        return self._client

    def complete(
        self,
        system_prompt: str,
        user_content: Union[str, list],
        model: Optional[str] = None,
        temperature: float = 0.7,
    ) -> LLMResult:
        """
        Send one system + user exchange and return the model's raw text.
        """
        model = model or self.settings.model
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                temperature=temperature,
            )
        except OpenAIError as e:
            return LLMResult(model=model, error=f"LLM request failed: {e}")

        if not response.choices:
            return LLMResult(model=model, error="LLM returned no choices")

        raw_text = response.choices[0].message.content or ""
        if self.settings.debug:
            print(f"DEBUG: Extracted content (first 500 chars): {raw_text[:500]}")
        return LLMResult(text=raw_text, model=model)
