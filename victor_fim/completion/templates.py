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

"""Fill-in-the-middle prompt templates and stop words.

Each model family expects its own sentinel tokens. A template turns the
prefix, suffix and optional context into a prompt; the matching stop words
mark where generated text must be cut.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Union

from victor_fim.completion.protocol import ContextWindow
from victor_fim.languages import get_language

logger = logging.getLogger(__name__)


class FimTemplateFormat(str, Enum):
    """Supported FIM template families."""

    AUTOMATIC = "automatic"
    CODEGEMMA = "codegemma"
    CODELLAMA = "codellama"
    CODEQWEN = "codeqwen"
    CODESTRAL = "codestral"
    CUSTOM = "custom-template"
    DEEPSEEK = "deepseek"
    LLAMA = "llama"
    STABLE_CODE = "stable-code"
    STARCODER = "starcoder"


StopWords = tuple[str, ...]

STOP_LLAMA: StopWords = ("<EOT>",)
STOP_DEEPSEEK: StopWords = (
    "<｜fim▁begin｜>",
    "<｜fim▁hole｜>",
    "<｜fim▁end｜>",
    "<END>",
    "<｜end▁of▁sentence｜>",
)
STOP_STARCODER: StopWords = (
    "<|endoftext|>",
    "<file_sep>",
    "<fim_prefix>",
    "<repo_name>",
)
STOP_QWEN: StopWords = (
    "<|endoftext|>",
    "<|file_sep|>",
    "<|fim_prefix|>",
    "<|im_end|>",
    "<|im_start|>",
    "<|repo_name|>",
    "<|fim_pad|>",
    "<|cursor|>",
)
STOP_CODEGEMMA: StopWords = ("<|file_separator|>", "<|end_of_turn|>", "<eos>")
STOP_CODESTRAL: StopWords = ("[PREFIX]", "[SUFFIX]")


@dataclass(frozen=True)
class FimTemplateData:
    """Inputs shared by every template function."""

    prefix: str
    suffix: str
    header: str = ""
    context: str = ""
    file_context_enabled: bool = False
    language_id: Optional[str] = None


@dataclass(frozen=True)
class FimPrompt:
    """A rendered prompt and the stop words for its template."""

    prompt: str
    stop_words: StopWords


@dataclass(frozen=True)
class RepositoryDocument:
    """Another file included in a repository-level prompt."""

    name: str
    text: str
    is_open: bool = False
    relevance_score: float = 0.0


def _file_context(data: FimTemplateData) -> str:
    if not data.file_context_enabled:
        return ""
    language = get_language(data.language_id)
    if language is None:
        return data.context
    return language.wrap_comment(data.context)


def llama_template(data: FimTemplateData) -> str:
    return f"<PRE>{_file_context(data)} \n{data.header}{data.prefix} <SUF> {data.suffix} <MID>"


def deepseek_template(data: FimTemplateData) -> str:
    return (
        f"<｜fim▁begin｜>{_file_context(data)}\n{data.header}{data.prefix}"
        f"<｜fim▁hole｜>{data.suffix}<｜fim▁end｜>"
    )


def codestral_template(data: FimTemplateData) -> str:
    return f"{_file_context(data)}\n\n[SUFFIX]{data.suffix}[PREFIX]{data.header}{data.prefix}"


def qwen_template(data: FimTemplateData) -> str:
    return f"<|fim_prefix|>{data.prefix}<|fim_suffix|>{data.suffix}<|fim_middle|>"


def starcoder_template(data: FimTemplateData) -> str:
    return (
        f"<fim_prefix>{_file_context(data)}\n{data.header}{data.prefix}"
        f"<fim_suffix>{data.suffix}<fim_middle>"
    )


TemplateFunction = Callable[[FimTemplateData], str]

TEMPLATES: Dict[FimTemplateFormat, TemplateFunction] = {
    FimTemplateFormat.CODELLAMA: llama_template,
    FimTemplateFormat.LLAMA: llama_template,
    FimTemplateFormat.DEEPSEEK: deepseek_template,
    FimTemplateFormat.CODESTRAL: codestral_template,
    FimTemplateFormat.CODEQWEN: qwen_template,
    FimTemplateFormat.STABLE_CODE: starcoder_template,
    FimTemplateFormat.STARCODER: starcoder_template,
    FimTemplateFormat.CODEGEMMA: starcoder_template,
}

STOP_WORDS: Dict[FimTemplateFormat, StopWords] = {
    FimTemplateFormat.CODELLAMA: STOP_LLAMA,
    FimTemplateFormat.LLAMA: STOP_LLAMA,
    FimTemplateFormat.DEEPSEEK: STOP_DEEPSEEK,
    FimTemplateFormat.CODESTRAL: STOP_CODESTRAL,
    FimTemplateFormat.CODEQWEN: STOP_QWEN,
    FimTemplateFormat.STABLE_CODE: STOP_STARCODER,
    FimTemplateFormat.STARCODER: STOP_STARCODER,
    FimTemplateFormat.CODEGEMMA: STOP_CODEGEMMA,
}

# Order matters: "codellama" must be checked before "llama"
DETECTION_ORDER: Sequence[FimTemplateFormat] = (
    FimTemplateFormat.CODELLAMA,
    FimTemplateFormat.LLAMA,
    FimTemplateFormat.DEEPSEEK,
    FimTemplateFormat.CODESTRAL,
    FimTemplateFormat.CODEQWEN,
    FimTemplateFormat.STABLE_CODE,
    FimTemplateFormat.STARCODER,
    FimTemplateFormat.CODEGEMMA,
)

DEFAULT_TEMPLATE: TemplateFunction = llama_template
DEFAULT_STOP_WORDS: StopWords = STOP_LLAMA


def detect_template_format(model_name: str) -> Optional[FimTemplateFormat]:
    """Detect the template family from a model name.

    Args:
        model_name: Backend model name (e.g., 'deepseek-coder:6.7b-base')

    Returns:
        Matching format or None if no family identifier is found
    """
    model_lower = model_name.lower()
    for template_format in DETECTION_ORDER:
        if template_format.value in model_lower:
            return template_format
    return None


def _coerce_format(template_format: Union[str, FimTemplateFormat]) -> Optional[FimTemplateFormat]:
    try:
        return FimTemplateFormat(template_format)
    except ValueError:
        logger.debug(f"Unknown FIM template format: {template_format}")
        return None


def resolve_template_format(
    model_name: str, template_format: Union[str, FimTemplateFormat]
) -> Optional[FimTemplateFormat]:
    """Resolve ``automatic``/``custom-template`` to a concrete family."""
    chosen = _coerce_format(template_format)
    if chosen in (FimTemplateFormat.AUTOMATIC, FimTemplateFormat.CUSTOM):
        return detect_template_format(model_name)
    return chosen


def get_fim_prompt(
    model_name: str,
    template_format: Union[str, FimTemplateFormat],
    data: FimTemplateData,
) -> str:
    resolved = resolve_template_format(model_name, template_format)
    template = TEMPLATES.get(resolved, DEFAULT_TEMPLATE) if resolved else DEFAULT_TEMPLATE
    return template(data)


def get_stop_words(model_name: str, template_format: Union[str, FimTemplateFormat]) -> StopWords:
    resolved = resolve_template_format(model_name, template_format)
    if resolved is None:
        return DEFAULT_STOP_WORDS
    return STOP_WORDS.get(resolved, DEFAULT_STOP_WORDS)


def build_fim_prompt(
    model_name: str,
    template_format: Union[str, FimTemplateFormat],
    data: FimTemplateData,
) -> FimPrompt:
    """Render the prompt and pick stop words for one model/format pair."""
    return FimPrompt(
        prompt=get_fim_prompt(model_name, template_format, data),
        stop_words=get_stop_words(model_name, template_format),
    )


def repository_level_template(
    repo_name: str,
    documents: Sequence[RepositoryDocument],
    window: ContextWindow,
    current_file: Optional[str],
) -> str:
    """Multi-file prompt in the Qwen repository format.

    Other files come first, each after a file separator; the current file
    ends the prompt with its prefix so the model continues it.
    """
    prompt = f"<|repo_name|>{repo_name}\n"
    for document in documents:
        prompt += f"<|file_sep|>{document.name}\n{document.text}\n"
    prompt += f"<|file_sep|>{current_file}\n{window.prefix}"
    return prompt.strip()
