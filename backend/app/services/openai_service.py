from typing import List, Dict, Any, Optional, AsyncIterator
import json
import logging

from openai import AsyncOpenAI

from app.core.config import settings

logger = logging.getLogger(__name__)


class OpenAIService:
    """
    Thin wrapper around the OpenAI API.

    Every model call in the application goes through this class so that
    model names live in one place and tests can replace a single object.
    """

    def __init__(self):
        self.client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self.chat_model = settings.OPENAI_MODEL
        self.small_model = settings.OPENAI_SMALL_MODEL
        self.embedding_model = settings.OPENAI_EMBEDDING_MODEL
        self.image_model = settings.OPENAI_IMAGE_MODEL

    @staticmethod
    def _build_messages(prompt: str, system: Optional[str]) -> List[Dict[str, str]]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def generate_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
    ) -> str:
        """Single completion, returns the text."""
        response = await self.client.chat.completions.create(
            model=model or self.small_model,
            messages=self._build_messages(prompt, system),
            temperature=temperature,
        )
        text = response.choices[0].message.content or ""
        if response.usage:
            logger.debug(f"Generated {len(text)} chars, {response.usage.total_tokens} tokens, model: {response.model}")
        return text

    async def stream_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas of a completion as they arrive."""
        stream = await self.client.chat.completions.create(
            model=model or self.chat_model,
            messages=self._build_messages(prompt, system),
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

    async def generate_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Completion constrained to a JSON object."""
        response = await self.client.chat.completions.create(
            model=model or self.chat_model,
            messages=self._build_messages(prompt, system),
            response_format={"type": "json_object"},
        )
        return json.loads(response.choices[0].message.content or "{}")

    async def stream_chat(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream a chat turn.

        Yields ``{"type": "text", "content": delta}`` for text and, once the
        stream ends, a single ``{"type": "tool_calls", "content": [...]}``
        when the model requested tools. Each call is
        ``{"id", "name", "arguments"}`` with arguments as a JSON string.
        """
        kwargs: Dict[str, Any] = {
            "model": model or self.chat_model,
            "messages": messages,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = tools

        stream = await self.client.chat.completions.create(**kwargs)
        calls: Dict[int, Dict[str, str]] = {}
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta.content:
                yield {"type": "text", "content": delta.content}
            for call in delta.tool_calls or []:
                entry = calls.setdefault(call.index, {"id": "", "name": "", "arguments": ""})
                if call.id:
                    entry["id"] = call.id
                if call.function and call.function.name:
                    entry["name"] += call.function.name
                if call.function and call.function.arguments:
                    entry["arguments"] += call.function.arguments

        if calls:
            yield {"type": "tool_calls", "content": [calls[i] for i in sorted(calls)]}

    async def create_embeddings(self, texts: List[str]) -> List[List[float]]:
        cleaned_texts = [text.replace("\n", " ") for text in texts]
        response = await self.client.embeddings.create(input=cleaned_texts, model=self.embedding_model)
        return [item.embedding for item in response.data]

    async def create_embedding(self, text: str) -> List[float]:
        return (await self.create_embeddings([text]))[0]

    async def generate_image(self, prompt: str) -> str:
        """Generate an image, returned base64 encoded."""
        response = await self.client.images.generate(
            model=self.image_model,
            prompt=prompt,
            n=1,
            response_format="b64_json",
        )
        return response.data[0].b64_json


openai_service = OpenAIService()
