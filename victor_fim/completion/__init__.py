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

"""Inline fill-in-the-middle completion engine.

Turns cursor positions in an editor buffer into code completions streamed
from a local or remote text-generation backend. Editors talk to the engine
through a few small protocols (TextBuffer, Workspace, status callback), so
the same engine serves any host.

Example usage:
    from victor_fim.completion import (
        InlineCompletionEngine,
        Position,
        StringTextBuffer,
    )
    from victor_fim.config import StaticConfigProvider

    engine = InlineCompletionEngine(
        StaticConfigProvider(
            model_name="codellama:7b-code",
            api_hostname="localhost",
            api_port=11434,
        )
    )

    buffer = StringTextBuffer("def add(a, b):\n    return ", path="math.py")
    completion = await engine.provide_inline_completion(buffer, Position(1, 11))
    if completion:
        print(completion.text)

    await engine.aclose()
"""

from victor_fim.completion.cache import MISSING, CompletionCache, LRUCache, get_cache_key
from victor_fim.completion.context import (
    StringTextBuffer,
    extract_context_window,
    should_skip_completion,
)
from victor_fim.completion.decision import CompletionDecisionEngine, strip_stop_words
from victor_fim.completion.engine import InlineCompletionEngine
from victor_fim.completion.errors import (
    CompletionError,
    ProviderNotConfiguredError,
    StreamConnectionError,
    StreamError,
    StreamStatusError,
    StreamTimeoutError,
)
from victor_fim.completion.formatter import CompletionFormatter
from victor_fim.completion.interactions import FileInteractionRecord, FileInteractionTracker
from victor_fim.completion.prompt import FileSystemWorkspace, PromptBuilder
from victor_fim.completion.protocol import (
    CancellationHandle,
    CompletionMetrics,
    CompletionSession,
    CompletionStatus,
    CompletionTriggerKind,
    ContextWindow,
    InlineCompletion,
    Position,
    StatusSink,
    TerminationReason,
    TextBuffer,
    Workspace,
)
from victor_fim.completion.scheduler import NamedLocks, RequestScheduler, SchedulerState
from victor_fim.completion.stream import (
    BackendDialect,
    StreamingClient,
    StreamRequest,
    build_stream_request,
)
from victor_fim.completion.syntax import CursorSyntax, analyze_cursor, split_declarations
from victor_fim.completion.templates import (
    FimPrompt,
    FimTemplateData,
    FimTemplateFormat,
    build_fim_prompt,
    get_stop_words,
)

__all__ = [
    # Engine
    "InlineCompletionEngine",
    # Protocol
    "CancellationHandle",
    "CompletionMetrics",
    "CompletionSession",
    "CompletionStatus",
    "CompletionTriggerKind",
    "ContextWindow",
    "InlineCompletion",
    "Position",
    "StatusSink",
    "TerminationReason",
    "TextBuffer",
    "Workspace",
    # Errors
    "CompletionError",
    "ProviderNotConfiguredError",
    "StreamConnectionError",
    "StreamError",
    "StreamStatusError",
    "StreamTimeoutError",
    # Context
    "StringTextBuffer",
    "extract_context_window",
    "should_skip_completion",
    # Cache
    "MISSING",
    "CompletionCache",
    "LRUCache",
    "get_cache_key",
    # Engagement tracking
    "FileInteractionRecord",
    "FileInteractionTracker",
    # Prompts
    "FileSystemWorkspace",
    "FimPrompt",
    "FimTemplateData",
    "FimTemplateFormat",
    "PromptBuilder",
    "build_fim_prompt",
    "get_stop_words",
    # Scheduling and streaming
    "BackendDialect",
    "NamedLocks",
    "RequestScheduler",
    "SchedulerState",
    "StreamRequest",
    "StreamingClient",
    "build_stream_request",
    # Decision and formatting
    "CompletionDecisionEngine",
    "CompletionFormatter",
    "strip_stop_words",
    # Syntax
    "CursorSyntax",
    "analyze_cursor",
    "split_declarations",
]
