"""Tests for the summarization client: API key resolution, model fallback and error mapping."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
import sys

import httpx
import openai
import pytest

# Ensure the repository's src/ directory is importable without installation.
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from newsdesk.core.errors import ApiError, NetworkError  # noqa: E402
from newsdesk.processors import summarizer  # noqa: E402
from newsdesk.processors.summarizer import Summarizer, resolve_api_key  # noqa: E402

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def status_error(cls, code: int):
    return cls("error", response=httpx.Response(code, request=REQUEST), body=None)


def completion(text: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.models = []

    def create(self, model, **kwargs):
        self.models.append(model)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_summarizer(outcomes, models=("primary", "fallback")):
    completions = FakeCompletions(outcomes)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return Summarizer("sk-test", list(models), client=client, retry_backoff=0), completions


def test_resolve_api_key_prefers_default_config_dir_when_base_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Relative api_key_file paths should resolve against the managed config directory."""

    secrets_dir = tmp_path / "secrets"
    secrets_dir.mkdir()
    key_path = secrets_dir / "custom.env"
    key_path.write_text("sk-test-123\n", encoding="utf-8")

    monkeypatch.setattr(summarizer, "DEFAULT_CONFIG_DIR", tmp_path)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    config = {"llm": {"api_key_file": "secrets/custom.env"}}

    assert resolve_api_key(config, config_base_dir=None) == "sk-test-123"


def test_resolve_api_key_reads_env_style_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    (tmp_path / "secrets").mkdir()
    (tmp_path / "secrets" / "openai.env").write_text('OPENAI_API_KEY="sk-from-file"\n', encoding="utf-8")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")

    assert resolve_api_key({}, config_base_dir=str(tmp_path)) == "sk-from-file"


def test_resolve_api_key_falls_back_to_named_env_var(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MY_KEY", "sk-env")

    assert resolve_api_key({"llm": {"api_key_env": "MY_KEY"}}, config_base_dir=str(tmp_path)) == "sk-env"
    assert resolve_api_key({"llm": {"api_key_env": "UNSET_KEY_NAME"}}, config_base_dir=str(tmp_path)) is None


def test_summarize_returns_model_text():
    s, completions = make_summarizer([completion("  A short summary.  ")])

    assert s.summarize("Long article body", title="Headline") == "A short summary."
    assert completions.models == ["primary"]


def test_unknown_model_falls_back():
    s, completions = make_summarizer([status_error(openai.NotFoundError, 404), completion("From fallback")])

    assert s.summarize("Body") == "From fallback"
    assert completions.models == ["primary", "fallback"]


def test_connection_error_retried_once_then_network_error():
    err = openai.APIConnectionError(request=REQUEST)
    s, completions = make_summarizer([err, err])

    with pytest.raises(NetworkError):
        s.summarize("Body")
    assert completions.models == ["primary", "primary"]


@pytest.mark.parametrize(
    "cls, code, reason",
    [
        (openai.AuthenticationError, 401, "auth"),
        (openai.RateLimitError, 429, "rate_limit"),
        (openai.InternalServerError, 500, "server"),
    ],
)
def test_status_errors_map_to_api_error(cls, code, reason):
    s, completions = make_summarizer([status_error(cls, code)])

    with pytest.raises(ApiError) as excinfo:
        s.summarize("Body")
    assert excinfo.value.reason == reason
    assert completions.models == ["primary"]


def test_missing_key_is_a_config_error():
    s = Summarizer(None, ["primary"])

    with pytest.raises(ApiError) as excinfo:
        s.summarize("Body")
    assert excinfo.value.reason == "config"


def test_empty_text_is_rejected_without_a_call():
    s, completions = make_summarizer([])

    with pytest.raises(ApiError):
        s.summarize("   ")
    assert completions.models == []
