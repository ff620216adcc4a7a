# src/hearth/llm/request.py

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from ..core.ports import ChatMessage

DEFAULT_IMAGE_PROMPT = (
    "Describe this image in detail: main objects, colors, lighting and background. "
    "Answer concisely in under 100 words."
)


@dataclass(frozen=True, slots=True)
class ChatRequest:
    """
    The request descriptor handed to whichever context executes a task.

    Built once from the task payload; the background worker and the in-page
    fallback receive the identical descriptor.
    """

    model: str
    messages: tuple[ChatMessage, ...]
    temperature: float = 0.7
    max_tokens: int | None = None

    api_key: str | None = field(default=None, repr=False)
    base_url: str | None = None

    # optional vision step before the main completion
    image_data_url: str | None = field(default=None, repr=False)
    image_prompt: str | None = None

    # who the reply is attributed to
    sender_name: str = ""
    display_name: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, defaults: Any = None) -> ChatRequest:
        """
        Payload keys: system_prompt, user_prompt (or messages), model, temperature,
        max_tokens, api_key, base_url, image_data_url, image_prompt,
        character_name, display_name.

        Missing model/credentials fall back to `defaults` (a Settings-like object).
        """
        raw_messages = payload.get("messages")
        if isinstance(raw_messages, list) and raw_messages:
            messages = tuple(
                {"role": str(m.get("role", "user")), "content": m.get("content", "")}
                for m in raw_messages
                if isinstance(m, dict)
            )
        else:
            msgs: list[ChatMessage] = []
            system_prompt = str(payload.get("system_prompt") or "")
            if system_prompt:
                msgs.append({"role": "system", "content": system_prompt})
            msgs.append({"role": "user", "content": str(payload.get("user_prompt") or "")})
            messages = tuple(msgs)

        model = payload.get("model") or getattr(defaults, "upstream_model", "") or ""
        temperature = payload.get("temperature")
        if temperature is None:
            temperature = getattr(defaults, "upstream_temperature", 0.7)
        max_tokens = payload.get("max_tokens")
        if max_tokens is None:
            max_tokens = getattr(defaults, "upstream_max_tokens", None)

        image = payload.get("image_data_url") or None

        return cls(
            model=str(model),
            messages=messages,
            temperature=float(temperature),
            max_tokens=int(max_tokens) if max_tokens else None,
            api_key=payload.get("api_key") or getattr(defaults, "upstream_api_key", None),
            base_url=payload.get("base_url") or getattr(defaults, "upstream_base_url", None),
            image_data_url=image,
            image_prompt=(payload.get("image_prompt") or DEFAULT_IMAGE_PROMPT) if image else None,
            sender_name=str(payload.get("character_name") or ""),
            display_name=payload.get("display_name"),
        )

    def with_image_description(self, description: str) -> ChatRequest:
        """Fold a vision result into the last user message and drop the image."""
        msgs = list(self.messages)
        note = f"\n\n[The user sent an image. Image content: {description}]"
        for i in range(len(msgs) - 1, -1, -1):
            if msgs[i].get("role") == "user":
                msgs[i] = {"role": "user", "content": str(msgs[i].get("content", "")) + note}
                break
        else:
            msgs.append({"role": "user", "content": note.strip()})
        return replace(self, messages=tuple(msgs), image_data_url=None, image_prompt=None)

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [dict(m) for m in self.messages],
            "temperature": self.temperature,
        }
        if self.max_tokens:
            body["max_tokens"] = self.max_tokens
        return body
