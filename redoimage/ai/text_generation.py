"""Text generation adapter: descriptive enhancement and two-line meme captions.

Both entry points share one language capability. When the primary model is reported
unavailable the call is retried exactly once against the configured fallback model;
the orchestrator never sees which model answered.
"""

import json
import logging
import math
import re
import time

from redoimage.ai.capability_base import BaseLanguageCapability
from redoimage.ai.schema import Completion, Description, MemeCaption
from redoimage.core.config import LanguageConfig
from redoimage.core.errors import InvalidArgument, ModelUnavailableError, ServiceFailure

_log = logging.getLogger(__name__)

FALLBACK_TOP = "WHEN YOU UPLOAD"
FALLBACK_BOTTOM = "AN AWESOME IMAGE"

DESCRIPTION_SYSTEM = (
    "You are an expert image description enhancer. Your task is to take image tags and expand "
    "them into detailed, vivid descriptions suitable for image generation."
)
MEME_SYSTEM = "You are a meme caption generator. Create funny, relatable captions."

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_MARKER_RE = re.compile(
    r"^[\s*#>-]*(TOP|BOTTOM)(?:[ _]?TEXT)?[\s*]*[:=][ \t*]*(.*)$",
    re.IGNORECASE | re.MULTILINE,
)
_JSON_KEYS = {
    "top": ("top", "topText", "top_text"),
    "bottom": ("bottom", "bottomText", "bottom_text"),
}


def description_token_budget(target_words: int, floor: int = 1500) -> int:
    """Output budget large enough to reach target_words (tokens per word exceeds 1)."""
    return max(floor, math.ceil(target_words * 2.5))


def estimate_tokens(text: str) -> int:
    return max(1, len(text) // 4)


def _clean_line(value: object) -> str:
    return str(value or "").strip().strip("\"'").strip()


def _parse_json_caption(text: str) -> tuple[str, str] | None:
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    if not isinstance(data, dict) or not any(k in data for keys in _JSON_KEYS.values() for k in keys):
        return None
    found = {}
    for field, keys in _JSON_KEYS.items():
        found[field] = next((_clean_line(data[k]) for k in keys if k in data), "")
    return found["top"], found["bottom"]


def _parse_marker_caption(text: str) -> tuple[str, str] | None:
    found: dict[str, str] = {}
    for marker, value in _MARKER_RE.findall(text):
        found.setdefault(marker.lower(), _clean_line(value))
    if not found:
        return None
    return found.get("top", ""), found.get("bottom", "")


def parse_meme_caption(raw: str) -> tuple[str, str] | None:
    """
    Extract (top, bottom) from a model response.

    Tries a JSON object, then TOP:/BOTTOM: markers, then a split on the first line break.
    A response that uses JSON keys or markers is taken as structured: if either field is
    missing there, no line split is attempted. Returns None when no two non-empty lines result.
    """
    text = _FENCE_RE.sub("", raw.strip())
    for parser in (_parse_json_caption, _parse_marker_caption):
        parsed = parser(text)
        if parsed is not None:
            return parsed if parsed[0] and parsed[1] else None
    parts = [p for p in (line.strip() for line in text.splitlines()) if p]
    if len(parts) >= 2:
        top, bottom = _clean_line(parts[0]), _clean_line(" ".join(parts[1:]))
        if top and bottom:
            return top, bottom
    return None


class TextGenerationAdapter:
    """Builds prompts, calls the language capability, and normalizes results."""

    def __init__(self, capability: BaseLanguageCapability, config: LanguageConfig) -> None:
        self._capability = capability
        self._config = config

    def _complete(self, prompt: str, system_instruction: str, max_output_tokens: int) -> Completion:
        """Call the capability with the primary model, retrying once on the fallback model if unavailable."""
        primary = self._config.model
        fallback = self._config.fallback_model
        try:
            return self._capability.complete(
                prompt, system_instruction, max_output_tokens, self._config.temperature, primary
            )
        except ModelUnavailableError as e:
            if not fallback or fallback == primary:
                raise ServiceFailure(f"Model {primary} unavailable and no fallback configured", cause=e) from e
            _log.warning("Primary model %s unavailable. Trying fallback model %s", primary, fallback)
        except Exception as e:
            raise ServiceFailure(f"Language capability error: {e}", cause=e) from e

        try:
            completion = self._capability.complete(
                prompt, system_instruction, max_output_tokens, self._config.temperature, fallback
            )
        except Exception as e:
            raise ServiceFailure(
                f"Language capability error on fallback model {fallback}: {e}", cause=e
            ) from e
        _log.info("Successfully used fallback model %s", fallback)
        return completion

    def enhance_description(
        self,
        tags: list[str],
        target_words: int,
        caption: str | None = None,
        confidence: float = 0.0,
    ) -> Description:
        if target_words <= 0:
            raise InvalidArgument("Target length must be greater than 0")

        _log.info("Generating description from %s tags. Target: %s words", len(tags), target_words)
        lines = []
        if caption:
            lines.append(f'I have an image with the following basic description:\n"{caption}"\n')
        lines.append(f"The image has been tagged with these elements: {', '.join(tags)}")
        if confidence > 0:
            lines.append(f"Analysis confidence: {confidence:.0%}")
        lines.append(
            f"\nCreate a detailed visual description of approximately {target_words} words "
            "suitable for image generation. Focus on concrete visual elements and composition. "
            "The description should be factual based on the information provided.\n\n"
            "Detailed description:"
        )
        prompt = "\n".join(lines)

        started = time.perf_counter()
        completion = self._complete(
            prompt,
            DESCRIPTION_SYSTEM,
            description_token_budget(target_words, self._config.min_description_tokens),
        )
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        text = completion.text.strip()
        if not text:
            raise ServiceFailure("Text generation returned an empty description")
        tokens = completion.tokens_used if completion.tokens_used > 0 else estimate_tokens(text)
        _log.info("Description generated in %sms. Words: %s, Tokens: %s", elapsed_ms, len(text.split()), tokens)
        return Description(text=text, tokens=tokens, elapsed_ms=elapsed_ms)

    def generate_meme_caption(self, tags: list[str], confidence: float) -> MemeCaption:
        _log.info("Generating meme caption from %s tags", len(tags))
        prompt = (
            f"Create a funny meme caption for an image with these elements: {', '.join(tags) or 'something'}\n"
            f"Analysis confidence: {confidence:.0%}\n\n"
            "Respond with exactly two lines and nothing else:\n"
            "TOP: <top caption>\n"
            "BOTTOM: <bottom caption>\n\n"
            "Keep captions short (3-7 words each). Make it humorous and relatable."
        )
        started = time.perf_counter()
        completion = self._complete(prompt, MEME_SYSTEM, self._config.meme_max_tokens)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        parsed = parse_meme_caption(completion.text)
        if parsed is None:
            raise ServiceFailure(f"Could not parse meme caption from response {completion.text[:200]!r}")
        top, bottom = parsed
        tokens = completion.tokens_used if completion.tokens_used > 0 else estimate_tokens(completion.text or prompt)
        _log.info("Meme caption generated in %sms. Top: %r, Bottom: %r", elapsed_ms, top, bottom)
        return MemeCaption(top=top, bottom=bottom, tokens=tokens, elapsed_ms=elapsed_ms)
