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

"""Unit tests for the prompt builder."""

import pytest

from victor_fim.completion.context import StringTextBuffer
from victor_fim.completion.errors import ProviderNotConfiguredError
from victor_fim.completion.interactions import FileInteractionTracker
from victor_fim.completion.prompt import PromptBuilder
from victor_fim.completion.protocol import ContextWindow
from victor_fim.completion.templates import STOP_LLAMA
from victor_fim.config import CompletionConfig


class FakeWorkspace:
    """Workspace backed by a dict of file contents."""

    def __init__(self, files=None, documents=None, name="demo"):
        self.files = files or {}
        self.documents = documents or []
        self.name = name

    def open_documents(self):
        return list(self.documents)

    def read_text(self, path):
        return self.files.get(path)


@pytest.fixture
def tracker():
    return FileInteractionTracker()


@pytest.fixture
def config():
    return CompletionConfig(model_name="codellama:7b-code", api_hostname="localhost")


@pytest.fixture
def buffer():
    return StringTextBuffer("x = ", path="/repo/main.py")


class TestPromptHeader:
    """Tests for the language/file header."""

    def test_header_uses_language_comments(self, tracker):
        builder = PromptBuilder(tracker, FakeWorkspace())

        header = builder.get_prompt_header("python", "file:///repo/main.py")

        assert header == (
            "\n''' Language: Python (python) '''"
            "\n''' File uri: file:///repo/main.py (python) '''\n"
        )

    def test_unknown_language_has_no_header(self, tracker):
        builder = PromptBuilder(tracker, FakeWorkspace())
        assert builder.get_prompt_header("plaintext", "file:///notes.txt") == ""


class TestFileInteractionContext:
    """Tests for cross-file context."""

    def test_includes_engaged_files_except_current(self, tracker):
        workspace = FakeWorkspace(files={"/repo/util.py": "def helper(): pass"})
        builder = PromptBuilder(tracker, workspace)
        tracker.start_session("/repo/util.py")
        tracker.start_session("/repo/main.py")

        context = builder.get_file_interaction_context("/repo/main.py")

        assert context == "# File: /repo/util.py\n# Language: Python\n#def helper(): pass"

    def test_long_files_are_windowed_around_active_lines(self, tracker):
        text = "\n".join(f"line{i}" for i in range(300))
        builder = PromptBuilder(tracker, FakeWorkspace(files={"/repo/big.py": text}))
        tracker.start_session("/repo/big.py")
        tracker.increment_strokes(250, 0)

        context = builder.get_file_interaction_context("/repo/main.py")

        lines = context.split("\n")
        assert lines[:3] == ["# File: /repo/big.py", "# Language: Python", "#line150"]
        assert lines[-1] == "#line299"
        assert len(lines) == 152

    def test_ignored_patterns_are_skipped(self, tracker):
        workspace = FakeWorkspace(files={"/repo/secret.py": "TOKEN = 1"})
        builder = PromptBuilder(tracker, workspace)
        tracker.start_session("/repo/secret.py")

        assert builder.get_file_interaction_context("/repo/main.py", ["secret*"]) == ""

    def test_open_documents_are_registered(self, tracker):
        document = StringTextBuffer("a = 1", path="/repo/open.py")
        builder = PromptBuilder(tracker, FakeWorkspace(documents=[document]))

        context = builder.get_file_interaction_context("/repo/main.py")

        assert tracker.get("/repo/open.py").is_open
        assert "# File: /repo/open.py\n# Language: Python\n#a = 1" in context

    def test_each_file_uses_its_own_comment_syntax(self, tracker):
        workspace = FakeWorkspace(
            files={"/repo/web/app.js": "let a = 1;", "/repo/notes.txt": "remember"}
        )
        builder = PromptBuilder(tracker, workspace)
        tracker.start_session("/repo/notes.txt")
        tracker.start_session("/repo/web/app.js")
        tracker.start_session("/repo/main.py")

        context = builder.get_file_interaction_context("/repo/main.py")

        assert "// File: /repo/web/app.js\n// Language: Javascript\n//let a = 1;" in context
        assert "// File: /repo/notes.txt\n//remember" in context

    def test_parsed_context_sends_declarations(self, tracker):
        source = (
            "import os\n\n\ndef helper():\n    return 1\n\n\n"
            "class Box:\n    size = 2\n\nVALUE = 3\n"
        )
        builder = PromptBuilder(tracker, FakeWorkspace(files={"/repo/util.py": source}))
        tracker.start_session("/repo/util.py")

        context = builder.get_file_interaction_context("/repo/main.py", parsed=True)

        assert context == (
            "# File: /repo/util.py\n# Language: Python\n"
            "#def helper():\n#    return 1\n#class Box:\n#    size = 2"
        )

    def test_parsed_context_without_grammar_sends_lines(self, tracker):
        builder = PromptBuilder(tracker, FakeWorkspace(files={"/repo/notes.txt": "remember"}))
        tracker.start_session("/repo/notes.txt")

        context = builder.get_file_interaction_context("/repo/main.py", parsed=True)

        assert context == "// File: /repo/notes.txt\n//remember"


class TestBuild:
    """Tests for full prompt assembly."""

    def test_missing_provider_fields_fail_fast(self, tracker, buffer):
        builder = PromptBuilder(tracker, FakeWorkspace())

        with pytest.raises(ProviderNotConfiguredError) as exc_info:
            builder.build(CompletionConfig(), buffer, ContextWindow(prefix="x = "))

        assert exc_info.value.missing == ["model_name", "api_hostname"]

    def test_builds_llama_prompt_with_header(self, tracker, config, buffer):
        builder = PromptBuilder(tracker, FakeWorkspace())

        prompt = builder.build(config, buffer, ContextWindow(prefix="x = ", suffix="\ny"))

        header = builder.get_prompt_header("python", buffer.uri)
        assert prompt.prompt == f"<PRE> \n{header}x =  <SUF> \ny <MID>"
        assert prompt.stop_words == STOP_LLAMA

    def test_file_context_is_included_when_enabled(self, tracker, buffer):
        workspace = FakeWorkspace(files={"/repo/util.py": "def helper(): pass"})
        builder = PromptBuilder(tracker, workspace)
        tracker.start_session("/repo/util.py")
        config = CompletionConfig(
            model_name="codellama", api_hostname="localhost", file_context_enabled=True
        )

        prompt = builder.build(config, buffer, ContextWindow(prefix="x = "))

        assert prompt.prompt.startswith(
            "<PRE>'''# File: /repo/util.py\n# Language: Python\n#def helper(): pass''' \n"
        )

    def test_repository_level_prompt(self, tracker, buffer):
        documents = [StringTextBuffer("def a(): pass", path="/repo/a.py")]
        builder = PromptBuilder(tracker, FakeWorkspace(documents=documents))
        config = CompletionConfig(
            model_name="codellama", api_hostname="localhost", repository_level=True
        )

        prompt = builder.build(config, buffer, ContextWindow(prefix="x = "))

        assert prompt.prompt == (
            "<|repo_name|>demo\n<|file_sep|>/repo/a.py\ndef a(): pass\n"
            "<|file_sep|>/repo/main.py\nx ="
        )

    def test_relevant_documents_are_capped(self, tracker):
        documents = [StringTextBuffer(str(i), path=f"/repo/f{i}.py") for i in range(5)]
        builder = PromptBuilder(tracker, FakeWorkspace(documents=documents))

        assert len(builder.get_relevant_documents("/repo/main.py")) == 3
