"""Application configuration (Pydantic v2). Load from redoimage_config.yml with optional env override."""

import os
from pathlib import Path
from typing import Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator


DEFAULT_CONFIG_ENV_VAR = "REDOIMAGE_CONFIG"
DEFAULT_CONFIG_FILENAME = "redoimage_config.yml"
MAX_IMAGE_BYTES = 20 * 1024 * 1024

# Environment variables that override credentials/endpoints for the default config only.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "REDOIMAGE_VISION_ENDPOINT": ("vision", "endpoint"),
    "REDOIMAGE_VISION_KEY": ("vision", "api_key"),
    "REDOIMAGE_OPENAI_BASE_URL": ("language", "base_url"),
    "REDOIMAGE_OPENAI_KEY": ("language", "api_key"),
}


class VisionConfig(BaseModel):
    """Vision analysis capability settings."""

    model_config = {"extra": "ignore", "frozen": True}

    endpoint: str = ""
    api_key: str = ""
    api_version: str = "2024-02-01"
    min_tag_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    timeout_seconds: float = 30.0


class LanguageConfig(BaseModel):
    """Language generation capability settings, including the one-shot fallback model."""

    model_config = {"extra": "ignore", "frozen": True}

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o"
    fallback_model: str | None = "gpt-4o-mini"
    temperature: float = 0.7
    min_description_tokens: int = 1500
    meme_max_tokens: int = 150
    timeout_seconds: float = 120.0

    @field_validator("fallback_model", mode="before")
    @classmethod
    def empty_fallback_is_none(cls, v: object) -> str | None:
        if v is None or v == "":
            return None
        return str(v)


class SynthesisConfig(BaseModel):
    """Image synthesis capability settings. Size and quality are fixed per deployment, not per request."""

    model_config = {"extra": "ignore", "frozen": True}

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "dall-e-3"
    size: str = "1024x1024"
    quality: str = "standard"
    max_prompt_chars: int = 4000
    timeout_seconds: float = 180.0


class RenderConfig(BaseModel):
    """Caption overlay tuning constants."""

    model_config = {"extra": "ignore", "frozen": True}

    preferred_font: str = "impact.ttf"
    fallback_fonts: list[str] = [
        "Impact.ttf",
        "DejaVuSans-Bold.ttf",
        "LiberationSans-Bold.ttf",
        "arialbd.ttf",
        "Arial Bold.ttf",
        "FreeSansBold.ttf",
    ]
    top_zone_fraction: float = 0.38
    bottom_zone_fraction: float = 0.30
    horizontal_padding_fraction: float = 0.04
    vertical_padding_fraction: float = 0.03
    max_font_divisor: float = 8.0
    min_font_divisor: float = 40.0
    min_font_size: float = 12.0
    font_step: float = 2.0
    min_stroke_width: int = 2


class PipelineConfig(BaseModel):
    """Request validation limits."""

    model_config = {"extra": "ignore", "frozen": True}

    max_image_bytes: int = MAX_IMAGE_BYTES
    min_target_words: int = 200
    max_target_words: int = 500
    allowed_content_types: list[str] = ["image/jpeg", "image/png"]


class Settings(BaseModel):
    """
    Top-level config loaded from YAML.

    Credentials/endpoints may be overridden by REDOIMAGE_* environment variables
    when loading the default config (but not when an explicit config_path is provided).
    """

    model_config = {"extra": "ignore", "frozen": True}

    backend: Literal["mock", "live"] = "mock"
    log_level: str = "WARNING"
    forensics_dir: str = "logs/forensics"
    vision: VisionConfig = VisionConfig()
    language: LanguageConfig = LanguageConfig()
    synthesis: SynthesisConfig = SynthesisConfig()
    render: RenderConfig = RenderConfig()
    pipeline: PipelineConfig = PipelineConfig()

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> str:
        return str(v or "WARNING").upper()


class ConfigLoader:
    """
    Helper responsible for loading Settings from YAML and environment.

    - load_from_yaml(path, apply_env_override): read a YAML file and optionally apply env overrides.
    - load_default(): resolve the default config path from REDOIMAGE_CONFIG / redoimage_config.yml and
      apply REDOIMAGE_* overrides when present.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def _apply_env(self, data: dict) -> dict:
        for var, (section, key) in ENV_OVERRIDES.items():
            value = self._env.get(var)
            if value:
                block = dict(data.get(section) or {})
                block[key] = value
                data[section] = block
        synth_key = self._env.get("REDOIMAGE_OPENAI_KEY")
        if synth_key:
            block = dict(data.get("synthesis") or {})
            block.setdefault("api_key", synth_key)
            data["synthesis"] = block
        return data

    def load_from_yaml(self, path: Path, apply_env_override: bool) -> Settings:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f)
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping at top level: {path}")
        if apply_env_override:
            data = self._apply_env(data)
        return Settings.model_validate(data)

    def load_default(self) -> Settings:
        """
        Load the default Settings, using REDOIMAGE_CONFIG or redoimage_config.yml.

        When no file exists, defaults are used and REDOIMAGE_* variables still apply.
        """
        path_str = self._env.get(DEFAULT_CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILENAME
        path = Path(path_str)
        if path.exists():
            return self.load_from_yaml(path, apply_env_override=True)
        return Settings.model_validate(self._apply_env({}))


def load_settings(config_path: str | Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """
    Return a fresh Settings instance.

    - If config_path is given, load from it without env overrides.
    - Otherwise resolve the default file via ConfigLoader.load_default().
    Nothing is cached; callers pass the result explicitly into adapters.
    """
    loader = ConfigLoader(env)
    if config_path is not None:
        return loader.load_from_yaml(Path(config_path), apply_env_override=False)
    return loader.load_default()
