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

"""Prompt assembly for inline completions.

Combines the context window with a language-aware file header and,
optionally, content from the files the user has been working in.
"""

import logging
import math
from pathlib import Path
from typing import Optional, Sequence

from victor_fim.completion.errors import ProviderNotConfiguredError
from victor_fim.completion.interactions import FileInteractionTracker
from victor_fim.completion.protocol import ContextWindow, TextBuffer, Workspace
from victor_fim.completion.syntax import find_parser, split_declarations
from victor_fim.completion.templates import (
    FimPrompt,
    FimTemplateData,
    RepositoryDocument,
    build_fim_prompt,
    get_stop_words,
    repository_level_template,
)
from victor_fim.config import CompletionConfig
from victor_fim.ignore_patterns import get_effective_patterns, should_ignore_for_context
from victor_fim.languages import comment_snippet, detect_language, get_language

logger = logging.getLogger(__name__)

# Files longer than this contribute only a window around their active lines
MAX_CONTEXT_LINE_COUNT = 200
CONTEXT_WINDOW_RADIUS = 100
MAX_RELEVANT_DOCUMENTS = 3


class FileSystemWorkspace:
    """Workspace without an editor: no open documents, files read from disk."""

    def __init__(self, root: Optional[Path] = None, name: Optional[str] = None):
        self.root = root
        self._name = name or (root.name if root else "untitled")

    @property
    def name(self) -> str:
        return self._name

    def open_documents(self) -> list[TextBuffer]:
        return []

    def read_text(self, path: str) -> Optional[str]:
        try:
            return Path(path).read_text(errors="replace")
        except OSError as e:
            logger.debug(f"Could not read context file {path}: {e}")
            return None


class PromptBuilder:
    """Builds FIM prompts from the current document and engagement data."""

    def __init__(
        self,
        tracker: FileInteractionTracker,
        workspace: Optional[Workspace] = None,
        workspace_root: Optional[Path] = None,
    ):
        """Initialize the prompt builder.

        Args:
            tracker: File engagement tracker used to rank other files
            workspace: Source of open documents and file contents
            workspace_root: Root used for ``.gitignore`` and relative paths
        """
        self._tracker = tracker
        self._workspace = workspace or FileSystemWorkspace(workspace_root)
        self._workspace_root = workspace_root

    def get_prompt_header(self, language_id: Optional[str], uri: str) -> str:
        """Comment lines naming the language and file, empty if unknown."""
        language = get_language(language_id)
        if language is None:
            return ""

        start, end = language.comment_start, language.comment_end
        language_line = f"{start} Language: {language.name} ({language_id}) {end}"
        path_line = f"{start} File uri: {uri} ({language_id}) {end}"
        return f"\n{language_line}\n{path_line}\n"

    def _read_document(self, path: str) -> Optional[str]:
        for document in self._workspace.open_documents():
            if document.path == path:
                return document.get_text()
        return self._workspace.read_text(path)

    def _ignore_patterns(self, config: CompletionConfig) -> list[str]:
        return get_effective_patterns(config.context_ignored_globs, self._workspace_root)

    def _register_open_documents(self) -> None:
        self._tracker.add_open_files(
            document.path for document in self._workspace.open_documents()
        )

    def get_file_interaction_context(
        self, current_path: str, ignored_patterns: Sequence[str] = (), parsed: bool = False
    ) -> str:
        """Content of ranked engaged files other than ``current_path``.

        Every file is written as comments in its own language, under a
        header naming the file and the language. Long files are cut to a
        window centred on the lines the user edited most recently. With
        ``parsed`` set, files with a grammar contribute their declarations
        instead.
        """
        self._register_open_documents()

        chunks: list[str] = []
        for interaction in self._tracker.get_all():
            path = interaction.path
            if path == current_path:
                continue
            if should_ignore_for_context(path, ignored_patterns, self._workspace_root):
                continue

            text = self._read_document(path)
            if text is None:
                continue

            language_id = detect_language(path)
            declarations = self._parsed_declarations(text, language_id) if parsed else []
            lines = text.split("\n")
            if declarations:
                text = "\n".join(declarations)
            elif len(lines) > MAX_CONTEXT_LINE_COUNT:
                active_lines = interaction.record.active_lines
                average_line = (
                    sum(position.line for position in active_lines) / len(active_lines)
                    if active_lines
                    else 0
                )
                centre = math.ceil(average_line)
                start = max(0, centre - CONTEXT_WINDOW_RADIUS)
                end = min(len(lines), centre + CONTEXT_WINDOW_RADIUS)
                text = "\n".join(lines[start:end])

            chunks.append(self._commented_file(path, language_id, text))

        return "\n".join(chunks)

    @staticmethod
    def _parsed_declarations(text: str, language_id: Optional[str]) -> list[str]:
        parser = find_parser(language_id)
        if parser is None:
            return []
        return split_declarations(text, parser)

    @staticmethod
    def _commented_file(path: str, language_id: Optional[str], text: str) -> str:
        language = get_language(language_id)
        header = [f" File: {path}"]
        if language is not None:
            header.append(f" Language: {language.name}")
        return comment_snippet("\n".join(header + [text]), language)

    def get_relevant_documents(
        self, current_path: str, ignored_patterns: Sequence[str] = ()
    ) -> list[RepositoryDocument]:
        """Top open and recently engaged documents for repository-level prompts."""
        scores = {item.path: item.score for item in self._tracker.get_all()}
        open_documents = self._workspace.open_documents()
        open_paths = {document.path for document in open_documents}

        documents: list[RepositoryDocument] = []
        for document in open_documents:
            if document.path == current_path:
                continue
            if should_ignore_for_context(document.path, ignored_patterns, self._workspace_root):
                continue
            documents.append(
                RepositoryDocument(
                    name=document.path,
                    text=document.get_text(),
                    is_open=True,
                    relevance_score=scores.get(document.path, 0.0),
                )
            )

        for path, score in scores.items():
            if path in open_paths or path == current_path:
                continue
            if should_ignore_for_context(path, ignored_patterns, self._workspace_root):
                continue
            text = self._workspace.read_text(path)
            if text is None:
                continue
            documents.append(RepositoryDocument(name=path, text=text, relevance_score=score))

        documents.sort(key=lambda document: document.relevance_score, reverse=True)
        return documents[:MAX_RELEVANT_DOCUMENTS]

    def build(
        self, config: CompletionConfig, buffer: TextBuffer, window: ContextWindow
    ) -> FimPrompt:
        """Build the prompt for one trigger.

        Raises:
            ProviderNotConfiguredError: If model or host are not configured
        """
        missing = config.missing_provider_fields()
        if missing:
            raise ProviderNotConfiguredError(missing)

        patterns = self._ignore_patterns(config)

        if config.repository_level:
            documents = self.get_relevant_documents(buffer.path, patterns)
            prompt = repository_level_template(
                self._workspace.name or "untitled", documents, window, buffer.path
            )
            return FimPrompt(
                prompt=prompt,
                stop_words=get_stop_words(config.model_name, config.fim_template_format),
            )

        context = ""
        if config.file_context_enabled:
            context = self.get_file_interaction_context(
                buffer.path, patterns, parsed=config.parsed_file_context
            )

        data = FimTemplateData(
            prefix=window.prefix,
            suffix=window.suffix,
            header=self.get_prompt_header(buffer.language_id, buffer.uri),
            context=context,
            file_context_enabled=config.file_context_enabled,
            language_id=buffer.language_id,
        )
        return build_fim_prompt(config.model_name, config.fim_template_format, data)
