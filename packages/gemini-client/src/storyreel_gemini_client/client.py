"""Gemini text client with a persistent response cache.

Scene breakdowns are re-run often against the same screenplay, so replies are
cached on disk keyed by the full request (model, prompt, system instruction and
sampling settings). Regeneration passes ``overwrite_cache=True`` to force a
fresh reply, which then replaces the cached one.
"""

import hashlib
import json
import logging
import os
from collections import OrderedDict
from pathlib import Path
from typing import Any, Optional

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)


def request_key(
    model: str,
    prompt: str,
    system_instruction: Optional[str],
    temperature: float,
    max_tokens: int,
) -> str:
    """Stable cache key for one generation request."""
    payload = json.dumps(
        [model, system_instruction or "", temperature, max_tokens, prompt],
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ResponseCache:
    """Least-recently-used cache of model replies, optionally backed by a JSON file."""

    def __init__(self, max_size: int = 100, path: Optional[Path] = None):
        self.max_size = max_size
        self.path = path
        self.hits = 0
        self.misses = 0
        self._entries: OrderedDict[str, str] = OrderedDict()

        if self.path:
            self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Discarding unreadable response cache %s: %s", self.path, e)
            return
        if not isinstance(data, dict):
            logger.warning("Discarding response cache %s: not a JSON object", self.path)
            return
        # File order is oldest first
        items = [(k, v) for k, v in data.items() if isinstance(v, str)]
        self._entries = OrderedDict(items[-self.max_size:])

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.path.with_suffix(".tmp")
            temp_file.write_text(json.dumps(self._entries, ensure_ascii=False), encoding="utf-8")
            temp_file.replace(self.path)
        except OSError as e:
            logger.warning("Could not persist response cache %s: %s", self.path, e)

    def get(self, key: str) -> Optional[str]:
        reply = self._entries.get(key)
        if reply is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return reply

    def put(self, key: str, reply: str) -> None:
        self._entries[key] = reply
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)
        if self.path:
            self._save()

    def discard(self, key: str) -> bool:
        if self._entries.pop(key, None) is None:
            return False
        if self.path:
            self._save()
        return True

    def clear(self) -> None:
        self._entries.clear()
        self.hits = self.misses = 0
        if self.path and self.path.exists():
            self.path.unlink()

    def __len__(self) -> int:
        return len(self._entries)


class GeminiClient:
    """Google Gemini text generation for scene breakdowns."""

    DEFAULT_MODEL = "gemini-2.5-flash"
    DEFAULT_CACHE_DIR = Path.home() / ".cache" / "storyreel"
    CACHE_FILE = "responses.json"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        cache_size: int = 100,
        cache_dir: Optional[Path] = None,
        persist_cache: bool = True,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Google API key (defaults to GOOGLE_API_KEY env var)
            model: Model name (defaults to STORYREEL_MODEL, then DEFAULT_MODEL)
            cache_size: Maximum number of cached replies
            cache_dir: Directory for the cache file (defaults to STORYREEL_CACHE_DIR,
                then ~/.cache/storyreel)
            persist_cache: Keep the cache on disk between runs
        """
        # Standardize on GOOGLE_API_KEY (unset GEMINI_API_KEY to avoid SDK warning)
        if "GEMINI_API_KEY" in os.environ:
            del os.environ["GEMINI_API_KEY"]

        self.api_key = api_key or os.environ.get("GOOGLE_API_KEY")
        if not self.api_key:
            raise ValueError(
                "GOOGLE_API_KEY environment variable is required. "
                "Get one at https://aistudio.google.com/apikey"
            )

        self.model = model or os.environ.get("STORYREEL_MODEL") or self.DEFAULT_MODEL
        self.client = genai.Client(api_key=self.api_key)

        cache_path = None
        if persist_cache:
            root = cache_dir or Path(os.environ.get("STORYREEL_CACHE_DIR", self.DEFAULT_CACHE_DIR))
            cache_path = Path(root) / self.CACHE_FILE
        self.cache = ResponseCache(max_size=cache_size, path=cache_path)

    def cache_stats(self) -> dict[str, Any]:
        return {
            "entries": len(self.cache),
            "hits": self.cache.hits,
            "misses": self.cache.misses,
            "path": str(self.cache.path) if self.cache.path else None,
        }

    async def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 8192,
        overwrite_cache: bool = False,
    ) -> str:
        """Generate a text reply, serving repeated requests from the cache.

        Returns "" when the model produced no text. Empty replies are never cached.

        Raises:
            RuntimeError: No candidates came back, or the reply was blocked by
                the safety filters
        """
        key = request_key(self.model, prompt, system_instruction, temperature, max_tokens)
        if not overwrite_cache:
            reply = self.cache.get(key)
            if reply is not None:
                logger.debug("Cache hit for %s request (%d chars)", self.model, len(prompt))
                return reply

        reply = await self._request(prompt, system_instruction, temperature, max_tokens)
        if reply:
            self.cache.put(key, reply)
        return reply

    def forget(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 8192,
    ) -> bool:
        """Drop the cached reply for a request so the next call reaches the model."""
        key = request_key(self.model, prompt, system_instruction, temperature, max_tokens)
        return self.cache.discard(key)

    async def _request(
        self,
        prompt: str,
        system_instruction: Optional[str],
        temperature: float,
        max_tokens: int,
    ) -> str:
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
        )
        if system_instruction:
            config.system_instruction = system_instruction

        logger.debug("Calling %s (max_tokens=%d, prompt=%d chars)", self.model, max_tokens, len(prompt))
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=config,
        )

        if response is None or not response.candidates:
            raise RuntimeError(
                "Gemini API response has no candidates. "
                "This may indicate content was blocked or an API error occurred."
            )

        finish_reason = str(getattr(response.candidates[0], "finish_reason", "") or "")
        if "SAFETY" in finish_reason:
            raise RuntimeError(f"Gemini blocked response due to safety filters: {finish_reason}")
        if "MAX_TOKENS" in finish_reason:
            # Partial JSON is still worth handing to the parser
            logger.warning("Response hit the %d token limit; output may be truncated", max_tokens)

        return response.text or ""


_client: Optional[GeminiClient] = None


def get_client() -> GeminiClient:
    """Get or create the process-wide Gemini client."""
    global _client
    if _client is None:
        _client = GeminiClient()
    return _client


def set_client(client: Optional[GeminiClient]) -> None:
    global _client
    _client = client
