"""
Shared fixtures. The generation service is replaced by a scripted fake so no
test touches the network.
"""
import json
import os
import tempfile
from types import SimpleNamespace

import pytest

# Must be set before belto_grader.utils.logger is imported
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="belto-grader-logs-"))

import requests  # noqa: E402


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


def completion(text):
    return FakeResponse(payload={"choices": [{"text": text}]})


def chat_completion(text):
    return FakeResponse(payload={"choices": [{"message": {"role": "assistant", "content": text}}]})


@pytest.fixture
def upstream(monkeypatch):
    """
    Scripted generation service.

    Append FakeResponse objects (or exceptions to raise) to `replies`; every
    request body lands in `calls`.
    """
    monkeypatch.setenv("LLM_COMPLETIONS_URL", "http://llm.test/v1/completions")
    monkeypatch.setenv("LLM_MODEL_NAME", "test-model")

    replies = []
    calls = []

    def fake_post(url, json=None, timeout=None, **kwargs):
        calls.append({"url": url, "json": json, "timeout": timeout})
        if not replies:
            raise AssertionError("Unexpected call to the generation service")
        reply = replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    monkeypatch.setattr(requests, "post", fake_post)

    return SimpleNamespace(
        replies=replies,
        calls=calls,
        completion=completion,
        chat_completion=chat_completion,
        response=FakeResponse,
    )


@pytest.fixture
def no_upstream(monkeypatch):
    monkeypatch.delenv("LLM_COMPLETIONS_URL", raising=False)
