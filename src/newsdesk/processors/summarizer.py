"""
LLM summarization of article text through the OpenAI chat completions API.

Behavior
- Tries the configured model, then the fallback model when the first is unknown/unsupported.
- API key from config.llm.api_key_file, <config dir>/secrets/openai.env, or the env var named by llm.api_key_env.
- Auth, rate-limit and server failures surface as ApiError; connection failures as NetworkError
  (retried once, like every other transient network failure).
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from ..core.config import DEFAULT_CONFIG_DIR
from ..core.errors import ApiError, NetworkError

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 12000

SYSTEM_PROMPT = (
    "You are a concise news summarizer. Summarize the article in three to five sentences "
    "for a busy reader. Avoid hype or superlatives."
)


def _load_key_from_file(path: Path) -> Optional[str]:
    """Read an API key from a file, tolerating KEY=value or raw key formats."""
    try:
        content = path.read_text(encoding='utf-8').strip()
    except OSError:
        return None
    if '=' in content:
        for line in content.splitlines():
            if line.strip().startswith('OPENAI_API_KEY'):
                val = line.split('=', 1)[1].strip().strip('"').strip("'")
                if val:
                    return val
    return content or None


def resolve_api_key(config: Dict[str, Any], config_base_dir: Optional[str] = None) -> Optional[str]:
    """Resolve the OpenAI API key from a key file or the environment; None when unset."""
    llm_cfg = config.get('llm') or {}
    env_var = llm_cfg.get('api_key_env') or 'OPENAI_API_KEY'
    base_dir = Path(config_base_dir) if config_base_dir else Path(DEFAULT_CONFIG_DIR)

    candidate_files: List[Path] = []
    key_file_cfg = (llm_cfg.get('api_key_file') or '').strip()
    if key_file_cfg:
        key_path = Path(key_file_cfg).expanduser()
        candidate_files.append(key_path if key_path.is_absolute() else base_dir / key_path)
    candidate_files.append(base_dir / 'secrets' / 'openai.env')

    for path in candidate_files:
        key = _load_key_from_file(path)
        if key:
            return key
    return os.environ.get(env_var) or None


class Summarizer:
    """Opaque ``summarize(text) -> text`` call with network-style error classification."""

    def __init__(
        self,
        api_key: Optional[str],
        models: List[str],
        max_tokens: int = 400,
        client: Any = None,
        retry_backoff: float = 1.0,
    ):
        self.api_key = api_key
        self.models = [m for m in models if m]
        self.max_tokens = max_tokens
        self.retry_backoff = retry_backoff
        self._client = client

    @classmethod
    def from_config(cls, config: Dict[str, Any], config_base_dir: Optional[str] = None) -> "Summarizer":
        llm_cfg = config.get('llm') or {}
        models = [llm_cfg.get('model') or 'gpt-4o-mini', llm_cfg.get('model_fallback')]
        return cls(
            resolve_api_key(config, config_base_dir),
            models,
            max_tokens=int(llm_cfg.get('max_tokens', 400)),
        )

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ApiError("Missing OpenAI API key", reason="config")
            # Retries are handled here so that only transient network failures repeat
            self._client = OpenAI(api_key=self.api_key, max_retries=0, timeout=60.0)
        return self._client

    def summarize(self, text: str, title: Optional[str] = None) -> str:
        """Return a short summary of *text*.

        Raises:
            ApiError: Missing key, rejected credentials, rate limiting, or server-side failure.
            NetworkError: The API could not be reached (after one retry).
        """
        body = (text or '').strip()
        if not body:
            raise ApiError("Nothing to summarize", reason="config")
        user_text = f"Title: {title}\n\n{body[:MAX_INPUT_CHARS]}" if title else body[:MAX_INPUT_CHARS]

        last_error: Optional[Exception] = None
        for model in self.models:
            try:
                return self._complete(model, user_text)
            except openai.NotFoundError as e:
                logger.info("Summarizer: model '%s' unavailable; trying fallback. Reason: %s", model, str(e)[:120])
                last_error = e
                continue
            except openai.BadRequestError as e:
                raise ApiError(f"Summarization request rejected: {e}", reason="server", status=400) from e
        raise ApiError(f"No usable summarization model: {last_error}", reason="server")

    def _complete(self, model: str, user_text: str) -> str:
        for attempt in range(2):
            try:
                resp = self.client.chat.completions.create(
                    model=model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": user_text},
                    ],
                    temperature=0.2,
                    max_tokens=self.max_tokens,
                )
            except openai.APIConnectionError as e:
                if attempt == 0:
                    time.sleep(self.retry_backoff)
                    continue
                raise NetworkError(f"Summarization service unreachable: {e}", transient=True) from e
            except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
                raise ApiError(f"Summarization credentials rejected: {e}", reason="auth", status=e.status_code) from e
            except openai.RateLimitError as e:
                raise ApiError("Summarization rate limit reached", reason="rate_limit", status=429) from e
            except (openai.NotFoundError, openai.BadRequestError):
                raise
            except openai.APIStatusError as e:
                raise ApiError(f"Summarization failed: HTTP {e.status_code}", reason="server", status=e.status_code) from e

            content = (resp.choices[0].message.content or "").strip()
            if not content:
                raise ApiError("Summarization returned an empty response", reason="server")
            return content
        raise NetworkError("Summarization service unreachable", transient=True)
