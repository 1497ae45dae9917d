"""HTTP implementations of the capabilities.

- AzureVisionCapability: Azure AI Vision Image Analysis 4.0 REST (caption + tags).
- OpenAIChatCapability: OpenAI-compatible /chat/completions.
- OpenAIImageCapability: OpenAI-compatible /images/generations with b64_json output.

Each class owns a persistent requests.Session with connection pooling so that many
concurrent pipeline runs reuse TCP connections instead of exhausting sockets.
"""

import base64
import logging

import requests

from redoimage.ai.capability_base import (
    BaseLanguageCapability,
    BaseSynthesisCapability,
    BaseVisionCapability,
)
from redoimage.ai.schema import Completion, GeneratedImage, RawTag, RawVisionAnalysis
from redoimage.core.config import LanguageConfig, SynthesisConfig, VisionConfig
from redoimage.core.errors import CapabilityError, ModelUnavailableError

_log = logging.getLogger(__name__)

MODEL_UNAVAILABLE_CODES = {"model_not_found", "DeploymentNotFound", "model_unavailable"}


def _pooled_session() -> requests.Session:
    session = requests.Session()
    adapter = requests.adapters.HTTPAdapter(pool_connections=10, pool_maxsize=20)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _error_detail(resp: requests.Response) -> tuple[str | None, str]:
    """Return (error code, message) from a JSON error body, falling back to the raw text."""
    try:
        body = resp.json()
    except ValueError:
        return None, resp.text[:500]
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return err.get("code"), str(err.get("message") or "")
    return None, str(body)[:500]


class AzureVisionCapability(BaseVisionCapability):
    """Vision capability backed by Azure AI Vision (caption and tags features)."""

    name = "azure-vision"

    def __init__(self, config: VisionConfig, session: requests.Session | None = None) -> None:
        if not config.endpoint or not config.api_key:
            raise ValueError("Vision endpoint and api_key must be configured for the live backend")
        self._config = config
        self._endpoint = config.endpoint.rstrip("/")
        self._session = session or _pooled_session()

    def analyze(self, image_bytes: bytes) -> RawVisionAnalysis:
        url = f"{self._endpoint}/computervision/imageanalysis:analyze"
        params = {
            "api-version": self._config.api_version,
            "features": "caption,tags",
            "language": "en",
            "gender-neutral-caption": "true",
        }
        try:
            resp = self._session.post(
                url,
                params=params,
                data=image_bytes,
                headers={
                    "Ocp-Apim-Subscription-Key": self._config.api_key,
                    "Content-Type": "application/octet-stream",
                },
                timeout=self._config.timeout_seconds,
            )
        except requests.RequestException as e:
            raise CapabilityError(f"Vision request failed: {e}") from e
        if resp.status_code != 200:
            _, message = _error_detail(resp)
            raise CapabilityError(
                f"Vision request failed with status {resp.status_code}: {message}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise CapabilityError("Vision response was not valid JSON") from e
        return self._parse(data)

    @staticmethod
    def _parse(data: dict) -> RawVisionAnalysis:
        caption_result = data.get("captionResult") or {}
        tag_values = (data.get("tagsResult") or {}).get("values") or []
        tags = [
            RawTag(name=str(t.get("name", "")), confidence=float(t.get("confidence") or 0.0))
            for t in tag_values
            if isinstance(t, dict)
        ]
        return RawVisionAnalysis(
            caption=caption_result.get("text"),
            tags=tags,
            confidence=float(caption_result.get("confidence") or 0.0),
        )


class OpenAIChatCapability(BaseLanguageCapability):
    """Language capability backed by an OpenAI-compatible chat completions endpoint."""

    name = "openai-chat"

    def __init__(self, config: LanguageConfig, session: requests.Session | None = None) -> None:
        if not config.api_key:
            raise ValueError("Language api_key must be configured for the live backend")
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._session = session or _pooled_session()

    def complete(
        self,
        prompt: str,
        system_instruction: str,
        max_output_tokens: int,
        temperature: float,
        model: str,
    ) -> Completion:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_output_tokens,
            "temperature": temperature,
        }
        try:
            resp = self._session.post(
                f"{self._base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self._config.api_key}"},
                timeout=self._config.timeout_seconds,
            )
        except requests.RequestException as e:
            raise CapabilityError(f"Chat request failed: {e}") from e
        if resp.status_code != 200:
            code, message = _error_detail(resp)
            if resp.status_code == 404 or code in MODEL_UNAVAILABLE_CODES or "unavailable" in message.lower():
                raise ModelUnavailableError(
                    f"Model {model} unavailable: {message}", status_code=resp.status_code
                )
            raise CapabilityError(
                f"Chat request failed with status {resp.status_code}: {message}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
            text = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CapabilityError("Chat response had an unexpected shape") from e
        usage = data.get("usage") or {}
        return Completion(
            text=text.strip(),
            tokens_used=int(usage.get("total_tokens") or 0),
            model=data.get("model") or model,
        )


class OpenAIImageCapability(BaseSynthesisCapability):
    """Synthesis capability backed by an OpenAI-compatible image generation endpoint."""

    name = "openai-images"

    def __init__(self, config: SynthesisConfig, session: requests.Session | None = None) -> None:
        if not config.api_key:
            raise ValueError("Synthesis api_key must be configured for the live backend")
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._session = session or _pooled_session()

    def generate(self, prompt: str, size: str, quality: str) -> GeneratedImage:
        payload = {
            "model": self._config.model,
            "prompt": prompt,
            "n": 1,
            "size": size,
            "quality": quality,
            "response_format": "b64_json",
        }
        try:
            resp = self._session.post(
                f"{self._base_url}/images/generations",
                json=payload,
                headers={"Authorization": f"Bearer {self._config.api_key}"},
                timeout=self._config.timeout_seconds,
            )
        except requests.RequestException as e:
            raise CapabilityError(f"Image request failed: {e}") from e
        if resp.status_code != 200:
            _, message = _error_detail(resp)
            raise CapabilityError(
                f"Image request failed with status {resp.status_code}: {message}",
                status_code=resp.status_code,
            )
        try:
            b64 = resp.json()["data"][0]["b64_json"]
            data = base64.b64decode(b64, validate=True)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CapabilityError("Image response had no decodable b64_json payload") from e
        _log.debug("Image capability returned %s bytes", len(data))
        return GeneratedImage(data=data, format="png")
