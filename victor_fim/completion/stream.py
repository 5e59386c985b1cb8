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

"""Streaming client for text-generation backends.

Sends one generation request and decodes the response as newline-delimited
JSON events. Backends differ in request body shape and in where the
incremental text lives; a ``BackendDialect`` captures both so callers only
ever see plain text fragments.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import httpx

from victor_fim.completion.errors import (
    StreamConnectionError,
    StreamError,
    StreamStatusError,
    StreamTimeoutError,
)
from victor_fim.completion.protocol import CancellationHandle
from victor_fim.config import CompletionConfig

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"


# Request bodies per backend family


def _ollama_body(prompt: str, config: CompletionConfig) -> Dict[str, Any]:
    keep_alive = config.keep_alive
    if keep_alive == "-1":
        keep_alive = -1
    body: Dict[str, Any] = {
        "model": config.model_name,
        "prompt": prompt,
        "stream": True,
        "options": {
            "temperature": config.temperature,
            "num_predict": config.num_predict,
        },
    }
    if keep_alive is not None:
        body["keep_alive"] = keep_alive
    return body


def _lmstudio_body(prompt: str, config: CompletionConfig) -> Dict[str, Any]:
    return {
        "model": config.model_name,
        "prompt": prompt,
        "stream": True,
        "temperature": config.temperature,
        "max_tokens": config.num_predict,
    }


def _llamacpp_body(prompt: str, config: CompletionConfig) -> Dict[str, Any]:
    return {
        "prompt": prompt,
        "stream": True,
        "temperature": config.temperature,
        "max_tokens": config.num_predict,
    }


def _litellm_body(prompt: str, config: CompletionConfig) -> Dict[str, Any]:
    return {
        "messages": [{"role": "user", "content": prompt}],
        "model": config.model_name,
        "stream": True,
        "max_tokens": config.num_predict,
        "temperature": config.temperature,
    }


def _default_body(prompt: str, config: CompletionConfig) -> Dict[str, Any]:
    return {
        "prompt": prompt,
        "stream": True,
        "temperature": config.temperature,
        "n_predict": config.num_predict,
    }


# Incremental text extraction per backend family


def extract_response_field(data: Dict[str, Any]) -> Optional[str]:
    return data.get("response")


def extract_content_field(data: Dict[str, Any]) -> Optional[str]:
    return data.get("content")


def extract_choice_text(data: Dict[str, Any]) -> Optional[str]:
    """Text from ``choices[0].text`` or ``choices[0].delta.content``."""
    choices = data.get("choices")
    if not choices:
        return None
    choice = choices[0] or {}
    text = choice.get("text")
    if text is None:
        delta = choice.get("delta") or {}
        text = delta.get("content")
    return text or ""


@dataclass(frozen=True)
class BackendDialect:
    """Request body builder and text extractor for one backend family."""

    name: str
    build_body: Callable[[str, CompletionConfig], Dict[str, Any]]
    extract_text: Callable[[Dict[str, Any]], Optional[str]]


DEFAULT_DIALECT = BackendDialect("default", _default_body, extract_choice_text)

DIALECTS: Dict[str, BackendDialect] = {
    "ollama": BackendDialect("ollama", _ollama_body, extract_response_field),
    "openai": BackendDialect("openai", _ollama_body, extract_choice_text),
    "openwebui": BackendDialect("openwebui", _ollama_body, extract_choice_text),
    "lmstudio": BackendDialect("lmstudio", _lmstudio_body, extract_choice_text),
    "llamacpp": BackendDialect("llamacpp", _llamacpp_body, extract_content_field),
    "oobabooga": BackendDialect("oobabooga", _llamacpp_body, extract_choice_text),
    "litellm": BackendDialect("litellm", _litellm_body, extract_choice_text),
}


def get_dialect(provider: str) -> BackendDialect:
    return DIALECTS.get(provider.lower(), DEFAULT_DIALECT)


@dataclass
class StreamRequest:
    """A fully prepared generation request."""

    url: str
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    dialect: BackendDialect = DEFAULT_DIALECT
    timeout: float = 20.0


def build_stream_request(config: CompletionConfig, prompt: str) -> StreamRequest:
    """Prepare the request for ``prompt`` from the current configuration."""
    dialect = get_dialect(config.provider)
    headers = {"Content-Type": "application/json"}
    if config.bearer_token:
        headers["Authorization"] = f"Bearer {config.bearer_token}"

    return StreamRequest(
        url=config.endpoint_url,
        body=dialect.build_body(prompt, config),
        headers=headers,
        dialect=dialect,
        timeout=config.request_timeout,
    )


def parse_stream_line(line: str) -> Optional[Dict[str, Any]]:
    """Decode one event line; malformed or empty lines yield None."""
    line = line.strip()
    if line.startswith(DATA_PREFIX):
        line = line[len(DATA_PREFIX) :].strip()
    if not line or line == DONE_MARKER:
        return None

    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.debug(f"Dropping malformed stream line: {line[:80]!r}")
        return None

    return data if isinstance(data, dict) else None


class StreamingClient:
    """Streams generation results from a backend over HTTP.

    Each call to ``stream`` creates a ``CancellationHandle`` and passes it to
    ``on_start`` before the request is sent. Cancelling the handle stops the
    read loop, closes the connection and fires ``on_end`` without further
    ``on_data`` calls. Transport failures are reported through ``on_error``.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the streaming client.

        Args:
            client: Preconfigured HTTP client (owned by the caller)
            transport: Transport for a client created on demand (e.g. for tests)
        """
        self._client = client
        self._owns_client = client is None
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def stream(
        self,
        request: StreamRequest,
        on_data: Callable[[str], None],
        on_start: Optional[Callable[[CancellationHandle], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[StreamError], None]] = None,
    ) -> None:
        """Run one streaming request to completion, cancellation or failure.

        Args:
            request: Prepared request
            on_data: Called with each non-empty text fragment
            on_start: Receives the cancellation handle for this request
            on_end: Called once on natural end or cancellation
            on_error: Called with the error on network failure or timeout
        """
        handle = CancellationHandle()
        if on_start:
            on_start(handle)

        if handle.cancelled:
            if on_end:
                on_end()
            return

        reader = asyncio.ensure_future(self._consume(request, handle, on_data))

        def _interrupt() -> None:
            # A cancel issued from on_data is picked up by the read loop itself
            if asyncio.current_task() is not reader:
                reader.cancel()

        handle.add_callback(_interrupt)

        try:
            await reader
        except asyncio.CancelledError:
            if not handle.cancelled:
                reader.cancel()
                raise
            logger.debug("Stream cancelled while waiting for data")
        except StreamError as e:
            logger.warning(f"Streaming request to {request.url} failed: {e}")
            if on_error:
                on_error(e)
            return

        if on_end:
            on_end()

    async def _consume(
        self,
        request: StreamRequest,
        handle: CancellationHandle,
        on_data: Callable[[str], None],
    ) -> None:
        client = self._get_client()
        logger.debug(f"Streaming response from {request.url}, body keys: {sorted(request.body)}")

        try:
            async with client.stream(
                "POST",
                request.url,
                json=request.body,
                headers=request.headers,
                timeout=httpx.Timeout(request.timeout),
            ) as response:
                if not response.is_success:
                    content = await response.aread()
                    raise StreamStatusError(
                        response.status_code, content.decode(errors="replace")[:200] or None
                    )

                async for line in response.aiter_lines():
                    if handle.cancelled:
                        break
                    data = parse_stream_line(line)
                    if data is None:
                        continue
                    fragment = request.dialect.extract_text(data)
                    if not fragment:
                        continue
                    on_data(fragment)
                    if handle.cancelled:
                        break
        except httpx.TimeoutException as e:
            raise StreamTimeoutError(request.timeout) from e
        except httpx.TransportError as e:
            raise StreamConnectionError(f"Cannot connect to {request.url}: {e}") from e
