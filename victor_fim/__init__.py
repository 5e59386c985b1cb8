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

"""Victor FIM: inline code completion for editors.

Package Structure:
    config.py            - CompletionConfig and configuration providers
    languages.py         - Language table (names, extensions, comment syntax)
    ignore_patterns.py   - Path filters for tracking and cross-file context
    completion/          - Context extraction, prompts, streaming and the engine

Usage:
    from victor_fim.completion import InlineCompletionEngine
    from victor_fim.config import StaticConfigProvider
"""

__version__ = "0.1.0"
