"""Google Gemini API client wrapper for StoryReel."""

from storyreel_gemini_client.client import (
    GeminiClient,
    ResponseCache,
    get_client,
    request_key,
    set_client,
)

__all__ = ["GeminiClient", "ResponseCache", "get_client", "request_key", "set_client"]
