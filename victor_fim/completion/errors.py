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

"""Errors raised inside the completion engine.

None of these escape the engine's public API; every failure degrades to
"no suggestion this time".
"""

from typing import Optional


class CompletionError(Exception):
    """Base class for completion engine errors."""


class ProviderNotConfiguredError(CompletionError):
    """The backend provider is missing required settings."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Completion provider not configured, missing: {', '.join(missing)}")


class StreamError(CompletionError):
    """A streaming request to the backend failed."""

    kind = "network"


class StreamConnectionError(StreamError):
    """The backend could not be reached."""

    kind = "connection"


class StreamStatusError(StreamError):
    """The backend answered with a non-2xx status."""

    kind = "status"

    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        message = f"Server responded with status code: {status_code}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class StreamTimeoutError(StreamError):
    """The request exceeded the configured timeout."""

    kind = "timeout"

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Request timed out after {timeout:.1f}s")
