# tests/test_request.py

from __future__ import annotations

from pathlib import Path

from hearth.config import Settings
from hearth.llm.client import to_upstream_error
from hearth.llm.offline import OfflineUpstreamClient
from hearth.llm.request import DEFAULT_IMAGE_PROMPT, ChatRequest
from hearth.tasks.execution import execute_request
from hearth.tasks.task_api import MEMORY_EXTRACTION_PROMPT
from hearth.tasks.task_models import TaskKind


def test_from_payload_uses_defaults(settings) -> None:
    req = ChatRequest.from_payload(
        {"system_prompt": "sys", "user_prompt": "hi", "character_name": "Mika"}, defaults=settings
    )

    assert req.model == "test-model"
    assert req.temperature == 0.5
    assert req.max_tokens is None
    assert req.api_key == "test-key"
    assert req.base_url == "http://upstream.invalid/v1"
    assert req.messages == ({"role": "system", "content": "sys"}, {"role": "user", "content": "hi"})
    assert req.sender_name == "Mika"
    assert req.image_prompt is None


def test_payload_overrides_win(settings) -> None:
    req = ChatRequest.from_payload(
        {
            "messages": [{"role": "user", "content": "a"}, "junk"],
            "model": "other",
            "temperature": 0,
            "max_tokens": 64,
            "api_key": "k2",
            "image_data_url": "data:image/jpeg;base64,AAAA",
        },
        defaults=settings,
    )

    assert req.model == "other"
    assert req.temperature == 0.0
    assert req.max_tokens == 64
    assert req.api_key == "k2"
    assert req.messages == ({"role": "user", "content": "a"},)
    assert req.image_prompt == DEFAULT_IMAGE_PROMPT

    body = req.to_wire()
    assert body == {
        "model": "other",
        "messages": [{"role": "user", "content": "a"}],
        "temperature": 0.0,
        "max_tokens": 64,
    }


def test_image_description_is_folded_into_last_user_message() -> None:
    req = ChatRequest(
        model="m",
        messages=(
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "look"},
            {"role": "assistant", "content": "ok"},
        ),
        image_data_url="data:image/jpeg;base64,AAAA",
        image_prompt="describe",
    )

    out = req.with_image_description("a cat")

    assert out.image_data_url is None and out.image_prompt is None
    assert out.messages[1]["content"] == "look\n\n[The user sent an image. Image content: a cat]"
    assert out.messages[2] == {"role": "assistant", "content": "ok"}
    # the source request is untouched
    assert req.messages[1]["content"] == "look"


class AuthenticationError(Exception):
    status_code = 401


class NotFoundError(Exception):
    status_code = 404


class APITimeoutError(Exception):
    pass


class InternalServerError(Exception):
    status_code = 500


def test_upstream_error_mapping() -> None:
    assert "authentication" in str(to_upstream_error(AuthenticationError("bad")))
    assert to_upstream_error(AuthenticationError("bad")).status_code == 401
    assert "gpt-x" in str(to_upstream_error(NotFoundError("nope"), model="gpt-x"))
    assert "timeout" in str(to_upstream_error(APITimeoutError()))

    err = to_upstream_error(InternalServerError("overloaded"))
    assert str(err) == "Upstream request failed (500): overloaded"
    assert err.status_code == 500


def test_settings_from_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("HEARTH_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("HEARTH_UPSTREAM_API_KEY", "sk-test")
    monkeypatch.setenv("HEARTH_UPSTREAM_MAX_TOKENS", "256")
    monkeypatch.setenv("HEARTH_BACKGROUND_ENABLED", "no")
    monkeypatch.setenv("HEARTH_AVATAR_MAX_PX", "not-a-number")

    s = Settings.from_env()

    assert s.data_dir == Path(tmp_path)
    assert s.store_db_path == Path(tmp_path) / "store.sqlite3"
    assert s.upstream_api_key == "sk-test"
    assert s.upstream_max_tokens == 256
    assert s.background_enabled is False
    assert s.avatar_max_px == 200


def test_settings_api_key_falls_back_to_openai_variable(monkeypatch) -> None:
    monkeypatch.delenv("HEARTH_UPSTREAM_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
    monkeypatch.delenv("HEARTH_UPSTREAM_MAX_TOKENS", raising=False)

    s = Settings.from_env()

    assert s.upstream_api_key == "sk-openai"
    assert s.upstream_max_tokens is None


def test_offline_client_output_decodes(settings) -> None:
    offline = OfflineUpstreamClient()

    reply = execute_request(
        offline,
        TaskKind.PRIVATE_CHAT_REPLY,
        ChatRequest.from_payload({"user_prompt": "ping", "character_name": "Mika"}, defaults=settings),
    )
    assert "You said: ping" in reply["messages"][0]["text"]

    memories = execute_request(
        offline,
        TaskKind.MEMORY_EXTRACTION,
        ChatRequest.from_payload(
            {"system_prompt": MEMORY_EXTRACTION_PROMPT, "user_prompt": "t"}, defaults=settings
        ),
    )
    assert memories == {"memories": []}
