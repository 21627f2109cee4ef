# ABOUTME: Shared LLM client wrapper with retry logic and error handling.
# ABOUTME: Provides an async interface to OpenAI chat completions, with JSON response parsing.

import json
from typing import Any

from openai import AsyncOpenAI

from agentic_rpg.agents.exceptions import InvalidLLMResponse, LLMCallFailed
from agentic_rpg.agents.llm_retry import llm_retry


class LLMClient:
    """
    Shared LLM client wrapper for consistent OpenAI API interactions.

    Transient API errors are retried by `llm_retry`; anything still failing
    surfaces as LLMCallFailed.
    """

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o"):
        """
        Args:
            client: AsyncOpenAI client instance
            model: OpenAI model to use (default: gpt-4o)
        """
        self.client = client
        self.model = model

    @llm_retry
    async def _create(self, **kwargs: Any) -> Any:
        return await self.client.chat.completions.create(**kwargs)

    async def call(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        response_format: dict[str, str] | None = None,
        timeout: float = 20.0,
    ) -> str:
        """
        Call the OpenAI chat completion API.

        Args:
            system_prompt: System message defining the narrator's role
            user_prompt: User message with the turn details
            temperature: Sampling temperature (default: 0.7)
            response_format: Optional response format (e.g., {"type": "json_object"})
            timeout: Request timeout in seconds (default: 20.0)

        Returns:
            Response message content

        Raises:
            LLMCallFailed: When all retry attempts fail
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "timeout": timeout,
        }
        if response_format:
            kwargs["response_format"] = response_format

        try:
            response = await self._create(**kwargs)
            return response.choices[0].message.content or ""
        except Exception as e:
            raise LLMCallFailed(f"OpenAI API call failed: {e}") from e

    async def call_json(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        timeout: float = 20.0,
    ) -> dict[str, Any]:
        """
        Call the API in JSON mode and parse the reply.

        Raises:
            LLMCallFailed: When the API call fails
            InvalidLLMResponse: When the reply is not a JSON object
        """
        content = await self.call(
            system_prompt,
            user_prompt,
            temperature=temperature,
            response_format={"type": "json_object"},
            timeout=timeout,
        )
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise InvalidLLMResponse(f"LLM returned invalid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise InvalidLLMResponse("LLM returned JSON that is not an object")
        return parsed
