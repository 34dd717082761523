"""Claude API client for code generation."""

import json
import logging
import os
import re
import time

import anthropic

from config.defaults import DEFAULTS
from core.errors import MissingCredentialError

logger = logging.getLogger(__name__)

MODEL = DEFAULTS["model"]
MAX_TOKENS = DEFAULTS["max_tokens"]


def get_client(api_key=None):
    """Return an Anthropic client. Raises if no API key is set."""
    api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise MissingCredentialError(
            "ANTHROPIC_API_KEY is required. Set it in the environment or in "
            f"{DEFAULTS['config_filename']}:\n"
            "  export ANTHROPIC_API_KEY='your-key-here'"
        )
    return anthropic.Anthropic(api_key=api_key)


def strip_fences(text):
    """Remove a surrounding markdown code fence, if the model added one."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)
    return cleaned


def call_llm(system_prompt, user_message, response_format=None, client=None):
    """Call Claude with optional structured JSON output.

    Args:
        system_prompt: System prompt string.
        user_message: User message string.
        response_format: If "json", appends instruction to return valid JSON
                         and parses the response.
        client: Optional preconfigured client (defaults to get_client()).

    Returns:
        Raw text string, or parsed JSON if response_format="json".

    Raises:
        anthropic.APIError: if the API fails twice in a row.
        json.JSONDecodeError: if JSON was requested and the reply is not JSON.
    """
    client = client or get_client()

    if response_format == "json":
        system_prompt = system_prompt + "\n\nIMPORTANT: Respond ONLY with valid JSON. No markdown fences, no commentary."

    last_error = None
    for attempt in range(2):
        try:
            # Use streaming to avoid SDK timeout for large max_tokens
            text = ""
            with client.messages.stream(
                model=MODEL,
                max_tokens=MAX_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            ) as stream:
                for chunk in stream.text_stream:
                    text += chunk
                response_msg = stream.get_final_message()

            if response_msg.stop_reason == "max_tokens":
                logger.warning("Response hit the %d token limit and may be truncated", MAX_TOKENS)

            if response_format == "json":
                return json.loads(strip_fences(text))
            return text

        except anthropic.APIError as e:
            last_error = e
            if attempt == 0:
                logger.warning("Claude API error, retrying: %s", e)
                time.sleep(2)
                continue
            raise

    raise last_error
