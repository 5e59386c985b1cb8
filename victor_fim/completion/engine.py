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

"""Inline completion engine.

Turns editor triggers into fill-in-the-middle completions:

    trigger -> context window -> cache lookup -> debounce + lock
            -> prompt -> stream -> stop decision -> format -> cache

Every trigger that passes the cheap checks gets a new nonce. Results are
only delivered when the nonce of the cycle that produced them is still the
current one; older results are cached but never shown.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from victor_fim.completion.cache import MISSING, CompletionCache
from victor_fim.completion.context import extract_context_window, should_skip_completion
from victor_fim.completion.decision import CompletionDecisionEngine, count_line_breaks
from victor_fim.completion.errors import ProviderNotConfiguredError, StreamError
from victor_fim.completion.formatter import CompletionFormatter
from victor_fim.completion.interactions import FileInteractionTracker
from victor_fim.completion.prompt import PromptBuilder
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
from victor_fim.completion.scheduler import NamedLocks, RequestScheduler
from victor_fim.completion.stream import StreamingClient, build_stream_request
from victor_fim.completion.syntax import CursorSyntax, analyze_cursor
from victor_fim.config import CompletionConfig, ConfigProvider, StaticConfigProvider

logger = logging.getLogger(__name__)

# Delay before a cursor move clears the accepted-completion flag
ACCEPTANCE_RESET_DELAY = 0.2


class InlineCompletionEngine:
    """Provides inline completions for one editor session.

    Example:
        engine = InlineCompletionEngine(
            StaticConfigProvider(model_name="codellama:7b-code", api_hostname="localhost")
        )
        completion = await engine.provide_inline_completion(buffer, Position(10, 4))
        if completion:
            print(completion.text)
        await engine.aclose()
    """

    def __init__(
        self,
        config_provider: Optional[ConfigProvider] = None,
        cache: Optional[CompletionCache] = None,
        tracker: Optional[FileInteractionTracker] = None,
        streaming_client: Optional[StreamingClient] = None,
        workspace: Optional[Workspace] = None,
        workspace_root: Optional[Path] = None,
        status_sink: Optional[StatusSink] = None,
        locks: Optional[NamedLocks] = None,
    ):
        """Initialize the engine.

        Args:
            config_provider: Source of the configuration, read on every trigger
            cache: Completion cache (sized from the configuration by default)
            tracker: File engagement tracker used for cross-file context
            streaming_client: Client used to talk to the backend
            workspace: Open documents and file access for context
            workspace_root: Root directory of the project being edited
            status_sink: Receives status changes for display
            locks: Lock registry shared by schedulers (private by default)
        """
        self._config_provider = config_provider or StaticConfigProvider()
        config = self._config_provider.get()

        self._cache = cache if cache is not None else CompletionCache(config.cache_capacity)
        self._tracker = tracker or FileInteractionTracker(
            capacity=config.interaction_capacity,
            inactivity_threshold=config.inactivity_threshold,
        )
        self._owns_client = streaming_client is None
        self._client = streaming_client or StreamingClient()
        self._prompt_builder = PromptBuilder(self._tracker, workspace, workspace_root)
        self._scheduler = RequestScheduler(config.debounce_wait_ms, locks=locks)
        self._status_sink = status_sink

        self._nonce = 0
        self._session: Optional[CompletionSession] = None
        self._metrics = CompletionMetrics()
        self._status = CompletionStatus.IDLE

        self._last_completion_text = ""
        self._accepted_last_completion = False
        self._last_completion_multiline = False
        self._acceptance_reset: Optional[asyncio.TimerHandle] = None

    @property
    def config(self) -> CompletionConfig:
        return self._config_provider.get()

    @property
    def cache(self) -> CompletionCache:
        return self._cache

    @property
    def tracker(self) -> FileInteractionTracker:
        return self._tracker

    @property
    def scheduler(self) -> RequestScheduler:
        return self._scheduler

    @property
    def metrics(self) -> CompletionMetrics:
        return self._metrics

    @property
    def status(self) -> CompletionStatus:
        return self._status

    @property
    def nonce(self) -> int:
        return self._nonce

    @property
    def last_completion_text(self) -> str:
        return self._last_completion_text

    def _set_status(self, status: CompletionStatus) -> None:
        self._status = status
        if self._status_sink is not None:
            self._status_sink(status)

    async def provide_inline_completion(
        self,
        buffer: TextBuffer,
        position: Position,
        trigger_kind: CompletionTriggerKind = CompletionTriggerKind.AUTOMATIC,
    ) -> Optional[InlineCompletion]:
        """Produce a completion for the cursor at ``position``.

        Args:
            buffer: Document being edited
            position: Cursor position
            trigger_kind: Whether the user asked explicitly or typing triggered it

        Returns:
            The completion, or None when there is nothing to show
        """
        try:
            return await self._provide(buffer, position, trigger_kind)
        except Exception:
            logger.exception(f"Unexpected error while completing {buffer.path}")
            self._metrics.failed_requests += 1
            self._set_status(CompletionStatus.ERROR)
            return None

    async def _provide(
        self,
        buffer: TextBuffer,
        position: Position,
        trigger_kind: CompletionTriggerKind,
    ) -> Optional[InlineCompletion]:
        config = self.config
        if not config.enabled or not config.is_language_enabled(buffer.language_id):
            return None

        started = time.perf_counter()
        window = extract_context_window(
            buffer, position, config.context_line_count, config.context_ratio
        )
        self._metrics.total_requests += 1

        if config.cache_enabled:
            cached = self._cache.get(window)
            if cached is not MISSING:
                self._metrics.cache_hits += 1
                logger.debug(f"Cache hit for {buffer.path} at {position.line}:{position.character}")
                return self._deliver(buffer, position, cached, self._nonce, started, from_cache=True)

        if trigger_kind == CompletionTriggerKind.INVOKED and config.auto_suggest_enabled:
            return self._deliver(
                buffer, position, self._last_completion_text, self._nonce, started
            )

        if self._should_skip(config, buffer, position, trigger_kind):
            self._set_status(CompletionStatus.IDLE)
            return None

        self._nonce += 1
        nonce = self._nonce
        self._cancel_active()
        self._set_status(CompletionStatus.THINKING)

        ran = False

        async def cycle() -> Optional[InlineCompletion]:
            nonlocal ran
            ran = True
            return await self._run_cycle(config, buffer, position, window, nonce, started)

        result = await self._scheduler.schedule(cycle, config.debounce_wait_ms)
        if not ran:
            logger.debug(f"Trigger {nonce} superseded while debouncing")
            self._metrics.cancelled_requests += 1
        return result

    def _should_skip(
        self,
        config: CompletionConfig,
        buffer: TextBuffer,
        position: Position,
        trigger_kind: CompletionTriggerKind,
    ) -> bool:
        if self._accepted_last_completion and not config.subsequent_completions_enabled:
            logger.debug("Skipping completion right after an accepted completion")
            return True
        if self._last_completion_multiline:
            logger.debug("Skipping completion after an accepted multiline completion")
            return True
        return should_skip_completion(buffer, position, trigger_kind, config.auto_suggest_enabled)

    async def _run_cycle(
        self,
        config: CompletionConfig,
        buffer: TextBuffer,
        position: Position,
        window: ContextWindow,
        nonce: int,
        started: float,
    ) -> Optional[InlineCompletion]:
        if nonce != self._nonce:
            logger.debug(f"Dropping stale trigger {nonce} before streaming, current is {self._nonce}")
            self._metrics.stale_results += 1
            return None

        try:
            prompt = self._prompt_builder.build(config, buffer, window)
        except ProviderNotConfiguredError as e:
            logger.warning(f"Completion skipped: {e}")
            self._metrics.failed_requests += 1
            self._set_status(CompletionStatus.IDLE)
            return None

        request = build_stream_request(config, prompt.prompt)
        decision = CompletionDecisionEngine(
            prompt.stop_words,
            multiline_enabled=config.multiline_enabled,
            max_lines=config.max_lines,
            syntax=self._analyze_cursor(config, buffer, position),
        )
        session = decision.start(nonce, window)
        self._session = session
        errors: list[StreamError] = []

        def on_start(handle: CancellationHandle) -> None:
            session.cancellation = handle
            if nonce == self._nonce:
                self._set_status(CompletionStatus.STREAMING)

        def on_data(fragment: str) -> None:
            if decision.on_fragment(fragment) is not None and session.cancellation:
                session.cancellation.cancel()

        def on_end() -> None:
            handle = session.cancellation
            cancelled = handle is not None and handle.cancelled
            decision.end(TerminationReason.CANCELLED if cancelled else TerminationReason.NATURAL_END)

        def on_error(error: StreamError) -> None:
            errors.append(error)
            decision.end(TerminationReason.ERROR)

        await self._client.stream(
            request, on_data, on_start=on_start, on_end=on_end, on_error=on_error
        )
        return self._finalize(buffer, position, decision, session, errors, started)

    def _analyze_cursor(
        self, config: CompletionConfig, buffer: TextBuffer, position: Position
    ) -> Optional[CursorSyntax]:
        if not config.syntax_aware_multiline or not config.multiline_enabled:
            return None
        line_text = buffer.line_at(position.line) if position.line < buffer.line_count else ""
        syntax = analyze_cursor(buffer.get_text(), buffer.language_id, position, line_text)
        if syntax is not None:
            logger.debug(
                f"Cursor node {syntax.node_type}, multiline required: {syntax.multiline_required}"
            )
        return syntax

    def _finalize(
        self,
        buffer: TextBuffer,
        position: Position,
        decision: CompletionDecisionEngine,
        session: CompletionSession,
        errors: list[StreamError],
        started: float,
    ) -> Optional[InlineCompletion]:
        if session.cancellation is not None:
            session.cancellation.cancel()
        if not session.is_terminated:
            decision.end()
        reason = session.termination or TerminationReason.NATURAL_END
        self._metrics.record_termination(reason)
        is_current = session.nonce == self._nonce

        if errors:
            self._metrics.failed_requests += 1
            if is_current:
                self._set_status(CompletionStatus.ERROR)
            return None

        if reason == TerminationReason.CANCELLED:
            logger.debug(f"Completion {session.nonce} cancelled")
            self._metrics.cancelled_requests += 1
            if is_current:
                self._set_status(CompletionStatus.IDLE)
            return None

        raw = decision.finalize()
        formatted = CompletionFormatter(buffer, position).format(raw)
        self._log_completion(buffer, session, raw, formatted)

        if self.config.cache_enabled:
            self._cache.put(session.context_window, formatted or None)

        if not is_current:
            logger.debug(f"Discarding stale completion {session.nonce}, current is {self._nonce}")
            self._metrics.stale_results += 1
            return None

        return self._deliver(buffer, position, formatted, session.nonce, started)

    def _deliver(
        self,
        buffer: TextBuffer,
        position: Position,
        text: Optional[str],
        nonce: int,
        started: float,
        from_cache: bool = False,
    ) -> Optional[InlineCompletion]:
        if text and from_cache:
            text = CompletionFormatter(buffer, position).format(text)

        self._set_status(CompletionStatus.IDLE)
        if not text:
            return None

        latency_ms = (time.perf_counter() - started) * 1000
        self._last_completion_text = text
        self._metrics.successful_requests += 1
        self._metrics.total_latency_ms += latency_ms
        return InlineCompletion(
            text=text,
            position=position,
            nonce=nonce,
            from_cache=from_cache,
            latency_ms=latency_ms,
        )

    def _log_completion(
        self, buffer: TextBuffer, session: CompletionSession, raw: str, formatted: str
    ) -> None:
        config = self.config
        logger.info(
            f"Completion {session.nonce} for {buffer.uri}: "
            f"{session.chunk_count} chunks, {count_line_breaks(formatted)} lines, "
            f"ended by {(session.termination or TerminationReason.NATURAL_END).value}, "
            f"max lines {config.max_lines}, file context {config.file_context_enabled}"
        )
        logger.debug(f"Original completion: {raw!r}\nFormatted completion: {formatted!r}")

    def _cancel_active(self) -> None:
        session = self._session
        if session is not None and session.cancellation is not None:
            session.cancellation.cancel()

    # Host notifications

    def _abandon(self) -> None:
        self._nonce += 1
        self._scheduler.cancel_pending()
        self._cancel_active()

    def stop(self) -> None:
        """Abandon the pending trigger and the running stream, if any."""
        self._abandon()
        self._set_status(CompletionStatus.IDLE)

    def on_cursor_changed(self) -> None:
        """The selection moved: stop work and soon forget an acceptance."""
        self.stop()
        if self._acceptance_reset is not None:
            self._acceptance_reset.cancel()
            self._acceptance_reset = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.set_accepted_last_completion(False)
            return
        self._acceptance_reset = loop.call_later(
            ACCEPTANCE_RESET_DELAY, self.set_accepted_last_completion, False
        )

    def set_accepted_last_completion(self, accepted: bool) -> None:
        self._accepted_last_completion = accepted
        self._last_completion_multiline = (
            accepted and count_line_breaks(self._last_completion_text) > 1
        )

    def on_document_changed(self, inserted_text: str, position: Position) -> None:
        """Record an edit; inserting the last multiline completion counts as accepting it."""
        last = self._last_completion_text
        self.set_accepted_last_completion(
            bool(inserted_text and last and inserted_text == last and count_line_breaks(last) > 1)
        )
        self._tracker.increment_strokes(position.line, position.character)

    def on_document_opened(self, path: str) -> None:
        self._tracker.end_session()
        self._tracker.start_session(path)

    def on_document_closed(self, path: str) -> None:
        if path == self._tracker.current_file:
            self._tracker.end_session()
        self._tracker.mark_closed(path)

    async def aclose(self) -> None:
        self._abandon()
        if self._acceptance_reset is not None:
            self._acceptance_reset.cancel()
            self._acceptance_reset = None
        self._tracker.dispose()
        if self._owns_client:
            await self._client.aclose()
