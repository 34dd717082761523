"""Generator agent: asks Claude for a complete CDKTF Go file set."""

import json
import logging
import os

import anthropic

from config.defaults import DEFAULTS
from core.errors import GenerationFailure
from utils.llm import call_llm, get_client

logger = logging.getLogger(__name__)

_PROMPT_FILE = os.path.join(os.path.dirname(__file__), "prompts", "generator.txt")


def _load_prompt():
    with open(_PROMPT_FILE) as f:
        return f.read()


def read_template_context(template_path):
    """Concatenate the template's key files for the system prompt."""
    if not template_path or not os.path.isdir(template_path):
        return "Template not found"

    sections = []
    for name in DEFAULTS["template_files"]:
        path = os.path.join(template_path, name)
        if os.path.isfile(path):
            with open(path, encoding="utf-8") as f:
                sections.append(f"=== {name} ===\n{f.read()}\n")
    return "\n".join(sections) or "Template structure unavailable"


def coerce_file_set(reply):
    """Accept only a JSON object mapping string paths to string contents."""
    if not isinstance(reply, dict):
        raise GenerationFailure(
            f"Expected a JSON object of file paths to contents, got {type(reply).__name__}"
        )
    bad = [k for k, v in reply.items() if not isinstance(k, str) or not isinstance(v, str)]
    if bad:
        raise GenerationFailure(f"Non-text entries in generated file set: {', '.join(map(str, bad))}")
    if not reply:
        raise GenerationFailure("Generation returned no files")
    return dict(reply)


class GeneratorAgent:
    """Generation service client used by the orchestrator."""

    name = "generator"

    def __init__(self, api_key=None, template_path=None):
        self.api_key = api_key
        self.template_path = template_path
        self._client = None

    def ensure_ready(self):
        """Fail fast when the generation credential is missing."""
        if self._client is None:
            self._client = get_client(self.api_key)
        return self._client

    def build_message(self, prompt, context=None):
        parts = []
        if context:
            parts.append(f"Context: {context}\n")
        parts.append(f"Infrastructure Requirements:\n{prompt}")
        return "\n".join(parts)

    def generate(self, prompt, context=None) -> dict:
        """Return {relative_path: content}. Raises GenerationFailure."""
        logger.info("Generating CDKTF Go code from prompt")
        system_prompt = _load_prompt().replace(
            "{template_context}", read_template_context(self.template_path)
        )
        try:
            reply = call_llm(
                system_prompt,
                self.build_message(prompt, context),
                response_format="json",
                client=self.ensure_ready(),
            )
        except anthropic.APIError as e:
            raise GenerationFailure(f"Code generation failed: {e}") from e
        except json.JSONDecodeError as e:
            raise GenerationFailure(f"Could not parse JSON from Claude response: {e}") from e

        files = coerce_file_set(reply)
        logger.info("Generated %d file(s): %s", len(files), ", ".join(sorted(files)))
        return files
