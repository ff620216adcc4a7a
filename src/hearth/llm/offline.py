# src/hearth/llm/offline.py

from __future__ import annotations

import json

from .request import ChatRequest


class OfflineUpstreamClient:
    """
    Offline deterministic upstream used for demos when no external API is configured.

    Behavior:
    - Memory extraction prompts -> returns an empty memory object
    - Image description -> returns a fixed description
    - Normal chat -> returns a one-message reply echoing the user
    """

    def complete(self, request: ChatRequest) -> str:
        system = " ".join(
            str(m.get("content", "")) for m in request.messages if m.get("role") == "system"
        ).lower()

        # Memory extraction must output JSON the memory decoder accepts.
        if "memory extraction" in system or '"permanent"' in system:
            return '{"permanent": [], "event": [], "summary": ""}'

        user_text = ""
        for m in reversed(request.messages):
            if m.get("role") == "user":
                user_text = str(m.get("content", ""))
                break

        reply = {
            "messages": [
                {
                    "content": (
                        "Offline demo mode: no upstream is configured. "
                        f"You said: {user_text}"
                    )
                }
            ]
        }
        return json.dumps(reply, ensure_ascii=False)

    def describe_image(self, request: ChatRequest) -> str:
        return "An image (offline mode cannot describe it)."
