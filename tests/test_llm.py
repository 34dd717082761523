"""Tests for utils.llm: streaming client is mocked, no network."""

import json
from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest

from core.errors import MissingCredentialError
from utils.llm import call_llm, get_client, strip_fences


def _api_error():
    return anthropic.APIConnectionError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )


def _client(*replies, stop_reason="end_turn"):
    """Client whose messages.stream yields each reply in turn (or raises it)."""
    client = MagicMock()
    streams = []
    for reply in replies:
        if isinstance(reply, Exception):
            streams.append(reply)
            continue
        stream = MagicMock()
        stream.text_stream = [reply[: len(reply) // 2], reply[len(reply) // 2:]]
        stream.get_final_message.return_value = MagicMock(stop_reason=stop_reason)
        ctx = MagicMock()
        ctx.__enter__.return_value = stream
        ctx.__exit__.return_value = False
        streams.append(ctx)
    client.messages.stream.side_effect = streams
    return client


# --- strip_fences ---

def test_strip_fences_json_block():
    assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_strip_fences_bare_block():
    assert strip_fences("```\nhello\n```") == "hello"


def test_strip_fences_leaves_plain_text():
    assert strip_fences('  {"a": 1}  ') == '{"a": 1}'


# --- get_client ---

def test_get_client_requires_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(MissingCredentialError, match="ANTHROPIC_API_KEY"):
        get_client()


def test_get_client_uses_env(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    assert isinstance(get_client(), anthropic.Anthropic)


# --- call_llm ---

def test_call_llm_returns_text():
    client = _client("plain response")
    assert call_llm("system", "user", client=client) == "plain response"
    kwargs = client.messages.stream.call_args.kwargs
    assert kwargs["system"] == "system"
    assert kwargs["messages"] == [{"role": "user", "content": "user"}]


def test_call_llm_parses_json_and_strips_fences():
    files = {"cdk.json": "{}"}
    client = _client("```json\n" + json.dumps(files) + "\n```")
    assert call_llm("system", "user", response_format="json", client=client) == files
    assert "Respond ONLY with valid JSON" in client.messages.stream.call_args.kwargs["system"]


def test_call_llm_invalid_json_raises():
    client = _client("not json at all")
    with pytest.raises(json.JSONDecodeError):
        call_llm("system", "user", response_format="json", client=client)


@patch("utils.llm.time.sleep")
def test_call_llm_retries_once(mock_sleep):
    client = _client(_api_error(), "second time lucky")
    assert call_llm("system", "user", client=client) == "second time lucky"
    assert client.messages.stream.call_count == 2
    mock_sleep.assert_called_once()


@patch("utils.llm.time.sleep")
def test_call_llm_gives_up_after_two_failures(mock_sleep):
    client = _client(_api_error(), _api_error())
    with pytest.raises(anthropic.APIError):
        call_llm("system", "user", client=client)
    assert client.messages.stream.call_count == 2


def test_call_llm_warns_on_truncation(caplog):
    client = _client("partial", stop_reason="max_tokens")
    with caplog.at_level("WARNING", logger="utils.llm"):
        assert call_llm("system", "user", client=client) == "partial"
    assert "token limit" in caplog.text
