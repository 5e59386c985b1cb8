# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Completion engine configuration.

The engine never caches a configuration object: every trigger asks its
``ConfigProvider`` for the current settings so edits take effect without
a restart.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class CompletionConfig(BaseModel):
    """Settings for inline FIM completions and the backend they stream from."""

    # Engine behaviour
    enabled: bool = Field(default=True, description="Master switch for inline completions")
    debounce_wait_ms: int = Field(
        default=300, ge=0, description="Quiet period before a trigger starts a request"
    )
    context_line_count: int = Field(
        default=100, ge=1, description="Lines of surrounding text sent as prefix + suffix"
    )
    context_ratio: float = Field(
        default=0.85, gt=0.0, lt=1.0, description="Share of the line budget given to the prefix"
    )
    max_lines: int = Field(
        default=30, ge=1, description="Stop streaming once more line breaks than this arrive"
    )
    multiline_enabled: bool = Field(
        default=True, description="Allow suggestions that span multiple lines"
    )
    syntax_aware_multiline: bool = Field(
        default=True,
        description="Use the syntax node at the cursor to decide when a suggestion ends",
    )
    auto_suggest_enabled: bool = Field(
        default=True, description="Suggest while typing (otherwise only on explicit request)"
    )
    subsequent_completions_enabled: bool = Field(
        default=True, description="Keep suggesting right after a suggestion was accepted"
    )
    enabled_languages: Dict[str, bool] = Field(
        default_factory=lambda: {"*": True},
        description="Per-language switch; '*' is the fallback",
    )

    # Cache
    cache_enabled: bool = Field(default=True, description="Reuse completions for equal context")
    cache_capacity: int = Field(default=50, ge=1, description="Maximum cached completions")

    # Prompt
    fim_template_format: str = Field(
        default="automatic",
        description="FIM template family, or 'automatic' to detect from the model name",
    )
    file_context_enabled: bool = Field(
        default=False, description="Inject content of recently edited files into the prompt"
    )
    parsed_file_context: bool = Field(
        default=False,
        description="Send declarations of context files instead of raw lines when parseable",
    )
    repository_level: bool = Field(
        default=False, description="Use the repository-level multi-file prompt format"
    )
    context_ignored_globs: List[str] = Field(
        default_factory=list, description="Glob patterns never used as cross-file context"
    )
    interaction_capacity: int = Field(
        default=20, ge=1, description="Number of files tracked for cross-file context"
    )
    inactivity_threshold: float = Field(
        default=300.0, gt=0, description="Seconds of inactivity before a file session pauses"
    )

    # Backend provider
    provider: str = Field(
        default="ollama",
        description="Backend dialect (ollama, openai, lmstudio, llamacpp, oobabooga, litellm)",
    )
    model_name: str = Field(default="", description="Model used for FIM generation")
    api_hostname: str = Field(default="", description="Backend host name")
    api_port: Optional[int] = Field(default=None, description="Backend port")
    api_path: str = Field(default="/api/generate", description="Generation endpoint path")
    api_protocol: str = Field(default="http", description="http or https")
    bearer_token: Optional[str] = Field(default=None, description="Bearer token for the backend")

    # Generation options
    temperature: float = Field(default=0.2, ge=0.0, description="Sampling temperature")
    num_predict: int = Field(default=512, ge=1, description="Maximum tokens to generate")
    keep_alive: Optional[Union[str, int]] = Field(
        default="5m", description="How long the backend keeps the model loaded"
    )
    request_timeout: float = Field(
        default=20.0, gt=0, description="Seconds before a streaming request is aborted"
    )

    @field_validator("api_protocol")
    @classmethod
    def _check_protocol(cls, value: str) -> str:
        value = value.lower().rstrip(":/")
        if value not in ("http", "https"):
            raise ValueError(f"Unsupported protocol: {value}")
        return value

    @field_validator("api_path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        if value and not value.startswith("/"):
            value = "/" + value
        return value

    @field_validator("fim_template_format")
    @classmethod
    def _normalize_template_format(cls, value: str) -> str:
        return value.strip().lower() or "automatic"

    @field_validator("provider")
    @classmethod
    def _normalize_provider(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def base_url(self) -> str:
        port = f":{self.api_port}" if self.api_port else ""
        return f"{self.api_protocol}://{self.api_hostname}{port}"

    @property
    def endpoint_url(self) -> str:
        return f"{self.base_url}{self.api_path}"

    def missing_provider_fields(self) -> List[str]:
        """Return the provider settings that must be set before streaming."""
        missing = []
        if not self.model_name:
            missing.append("model_name")
        if not self.api_hostname:
            missing.append("api_hostname")
        return missing

    def is_language_enabled(self, language_id: str) -> bool:
        if language_id in self.enabled_languages:
            return self.enabled_languages[language_id]
        return self.enabled_languages.get("*", True)


@runtime_checkable
class ConfigProvider(Protocol):
    """Supplies the current configuration on every call."""

    def get(self) -> CompletionConfig:
        ...


class StaticConfigProvider:
    """In-memory configuration, updated explicitly by the host."""

    def __init__(self, config: Optional[CompletionConfig] = None, **overrides: Any):
        base = config or CompletionConfig()
        if overrides:
            base = CompletionConfig.model_validate({**base.model_dump(), **overrides})
        self._config = base

    def get(self) -> CompletionConfig:
        return self._config

    def update(self, **changes: Any) -> CompletionConfig:
        """Apply changes, validating the merged result."""
        data = self._config.model_dump()
        data.update(changes)
        self._config = CompletionConfig.model_validate(data)
        return self._config


class YamlConfigProvider:
    """Configuration read from a YAML file, reloaded when the file changes.

    Expected format (keys mirror ``CompletionConfig`` fields):
    ```yaml
    completion:
      model_name: codellama:7b-code
      api_hostname: localhost
      api_port: 11434
      debounce_wait_ms: 250
    ```
    A top-level mapping without the ``completion`` key is also accepted.
    """

    def __init__(self, path: Union[str, Path], defaults: Optional[CompletionConfig] = None):
        self._path = Path(path)
        self._defaults = defaults or CompletionConfig()
        self._config = self._defaults
        self._mtime: Optional[float] = None

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> CompletionConfig:
        try:
            mtime = self._path.stat().st_mtime
        except OSError:
            return self._config

        if mtime != self._mtime:
            self._mtime = mtime
            self._reload()
        return self._config

    def _reload(self) -> None:
        try:
            with open(self._path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load completion config from {self._path}: {e}")
            return

        if not isinstance(data, dict):
            logger.error(f"Completion config in {self._path} must be a mapping")
            return

        section = data.get("completion", data)
        merged = self._defaults.model_dump()
        merged.update(section or {})
        try:
            self._config = CompletionConfig.model_validate(merged)
        except ValidationError as e:
            logger.error(f"Invalid completion config in {self._path}: {e}")
            return
        logger.debug(f"Reloaded completion config from {self._path}")
