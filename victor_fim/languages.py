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

"""Language metadata used when building prompts.

Maps editor language identifiers to display names, file extensions and
comment syntax. Prompt headers and cross-file context blocks are written
as comments so the backend reads them as such.
"""

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Dict, List, Optional


# Used for languages without any comment syntax
DEFAULT_LINE_COMMENT = "//"


@dataclass(frozen=True)
class LanguageConfig:
    """Display and comment syntax for a language."""

    name: str  # Human-readable name
    language_id: str  # Editor language identifier
    file_extensions: List[str] = field(default_factory=list)
    comment_start: str = ""
    comment_end: str = ""
    single_line_comment: str = ""  # Line comment token, empty if the language has none

    def wrap_comment(self, text: str) -> str:
        return f"{self.comment_start}{text}{self.comment_end}"

    def comment_line(self, line: str) -> str:
        if self.single_line_comment:
            return f"{self.single_line_comment}{line}"
        if self.comment_start:
            return self.wrap_comment(line)
        return f"{DEFAULT_LINE_COMMENT}{line}"


def _c_style(
    name: str, language_id: str, extensions: List[str], line_comment: str = "//"
) -> LanguageConfig:
    return LanguageConfig(
        name=name,
        language_id=language_id,
        file_extensions=extensions,
        comment_start="/*",
        comment_end="*/",
        single_line_comment=line_comment,
    )


def _hash_style(name: str, language_id: str, extensions: List[str]) -> LanguageConfig:
    return LanguageConfig(
        name=name,
        language_id=language_id,
        file_extensions=extensions,
        comment_start="#",
        single_line_comment="#",
    )


def _markup_style(name: str, language_id: str, extensions: List[str]) -> LanguageConfig:
    return LanguageConfig(
        name=name,
        language_id=language_id,
        file_extensions=extensions,
        comment_start="<!--",
        comment_end="-->",
    )


SUPPORTED_LANGUAGES: Dict[str, LanguageConfig] = {
    "bat": LanguageConfig(
        name="BAT file",
        language_id="bat",
        file_extensions=[".bat", ".cmd"],
        comment_start="REM",
        single_line_comment="REM ",
    ),
    "c": _c_style("C", "c", [".c", ".h"]),
    "csharp": _c_style("C#", "csharp", [".cs"]),
    "cpp": _c_style("C++", "cpp", [".cpp", ".cc", ".hpp", ".h"]),
    "css": _c_style("CSS", "css", [".css"], line_comment=""),
    "go": _c_style("Go", "go", [".go"]),
    "html": _markup_style("HTML", "html", [".htm", ".html"]),
    "java": _c_style("Java", "java", [".java"]),
    "javascript": _c_style("Javascript", "javascript", [".js", ".cjs", ".mjs"]),
    "javascriptreact": _c_style("Javascript JSX", "javascriptreact", [".jsx"]),
    "json": LanguageConfig(
        name="JSON", language_id="json", file_extensions=[".json", ".jsonl", ".geojson"]
    ),
    "kotlin": _c_style("Kotlin", "kotlin", [".kt", ".ktm", ".kts"]),
    "lua": LanguageConfig(
        name="Lua",
        language_id="lua",
        file_extensions=[".lua"],
        comment_start="--",
        single_line_comment="--",
    ),
    "objective-c": _c_style("Objective C", "objective-c", [".m", ".mm"]),
    "perl": _hash_style("Perl", "perl", [".pl", ".pm"]),
    "php": _c_style("PHP", "php", [".php", ".php3", ".php4", ".php5", ".phps", ".phpt", ".inc"]),
    "python": LanguageConfig(
        name="Python",
        language_id="python",
        file_extensions=[".py", ".pyi"],
        comment_start="'''",
        comment_end="'''",
        single_line_comment="#",
    ),
    "r": _hash_style("R", "r", [".r", ".R"]),
    "ruby": LanguageConfig(
        name="Ruby",
        language_id="ruby",
        file_extensions=[".rb"],
        comment_start="=begin",
        comment_end="=end",
        single_line_comment="#",
    ),
    "rust": _c_style("Rust", "rust", [".rs"]),
    "sass": _c_style("SASS", "sass", [".sass"]),
    "scala": _c_style("Scala", "scala", [".scala"]),
    "scss": _c_style("SCSS", "scss", [".scss"]),
    "shellscript": _hash_style("Shell", "shellscript", [".sh", ".bash", ".zsh"]),
    "sql": _c_style("SQL", "sql", [".sql"], line_comment="--"),
    "swift": _c_style("Swift", "swift", [".swift"]),
    "typescript": _c_style("Typescript", "typescript", [".ts", ".cts", ".mts"]),
    "typescriptreact": _c_style("Typescript React", "typescriptreact", [".tsx"]),
    "xaml": _markup_style("XAML", "xaml", [".xaml"]),
    "xml": _markup_style("XML", "xml", [".xml"]),
    "yaml": _hash_style("YAML", "yaml", [".yml", ".yaml"]),
}


# Extension lookup, first registration wins for shared extensions (.h -> c)
_EXTENSION_MAP: Dict[str, str] = {}
for _language_id, _language in SUPPORTED_LANGUAGES.items():
    for _ext in _language.file_extensions:
        _EXTENSION_MAP.setdefault(_ext, _language_id)


def get_language(language_id: Optional[str]) -> Optional[LanguageConfig]:
    """Get language metadata by editor language identifier.

    Args:
        language_id: Language identifier (e.g., 'python')

    Returns:
        LanguageConfig or None if the language is unknown
    """
    if not language_id:
        return None
    return SUPPORTED_LANGUAGES.get(language_id)


def detect_language(path: str) -> Optional[str]:
    """Detect a language identifier from a file path's extension."""
    suffix = PurePath(path).suffix
    if not suffix:
        return None
    return _EXTENSION_MAP.get(suffix) or _EXTENSION_MAP.get(suffix.lower())


def comment_snippet(text: str, language: Optional[LanguageConfig]) -> str:
    """Comment out every line of ``text`` in the syntax of ``language``."""
    if language is None:
        return "\n".join(f"{DEFAULT_LINE_COMMENT}{line}" for line in text.split("\n"))
    return "\n".join(language.comment_line(line) for line in text.split("\n"))
