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

"""Syntax awareness for completions, backed by tree-sitter.

Two things use the parse of a document:

- the stop decision, which needs to know whether the syntax node at the
  cursor calls for a multi-line completion at all
- cross-file context, which can send declarations instead of raw lines

Grammars come from pre-compiled packages (``pip install tree-sitter-<lang>``).
A language without an installed grammar simply gets no syntax information.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from tree_sitter import Language, Parser

from victor_fim.completion.protocol import Position

if TYPE_CHECKING:
    from tree_sitter import Node

logger = logging.getLogger(__name__)


# Editor language id -> ("module_name", "function_name")
# function_name returns the Language object (usually "language")
GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "python": ("tree_sitter_python", "language"),
    "javascript": ("tree_sitter_javascript", "language"),
    "javascriptreact": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "typescriptreact": ("tree_sitter_typescript", "language_tsx"),
    "java": ("tree_sitter_java", "language"),
    "go": ("tree_sitter_go", "language"),
    "rust": ("tree_sitter_rust", "language"),
    "c": ("tree_sitter_c", "language"),
    "cpp": ("tree_sitter_cpp", "language"),
    "csharp": ("tree_sitter_c_sharp", "language"),
    "ruby": ("tree_sitter_ruby", "language"),
    "php": ("tree_sitter_php", "language_php"),
    "kotlin": ("tree_sitter_kotlin", "language"),
    "swift": ("tree_sitter_swift", "language"),
    "scala": ("tree_sitter_scala", "language"),
    "shellscript": ("tree_sitter_bash", "language"),
    "lua": ("tree_sitter_lua", "language"),
    "css": ("tree_sitter_css", "language"),
    "html": ("tree_sitter_html", "language"),
}

# Nodes where the completion usually continues past the current line.
# Outside nodes sit between statements, inside nodes wrap a body.
MULTILINE_OUTSIDE = [
    "class_body",
    "class",
    "export",
    "identifier",
    "interface_body",
    "interface",
    "program",
    "module",
]

MULTILINE_INSIDE = [
    "block",
    "body",
    "export_statement",
    "formal_parameters",
    "function_definition",
    "named_imports",
    "object_pattern",
    "object_type",
    "object",
    "parenthesized_expression",
    "statement_block",
]

MULTILINE_TYPES = MULTILINE_OUTSIDE + MULTILINE_INSIDE

# A blank line ends a syntactically complete multi-line completion
MULTI_LINE_DELIMITERS = ("\n\n", "\r\n\r\n")

# Declarations sent as cross-file context when parsed context is on
DECLARATION_NODE_TYPES = {
    "class_declaration",
    "class_definition",
    "decorated_definition",
    "enum_declaration",
    "function_declaration",
    "function_definition",
    "function_item",
    "impl_item",
    "interface_declaration",
    "lexical_declaration",
    "method_declaration",
    "struct_item",
    "type_alias_declaration",
    "type_declaration",
}

_language_cache: Dict[str, Language] = {}
_parser_cache: Dict[str, Parser] = {}


def get_grammar(language_id: str) -> Language:
    """Load the tree-sitter Language for an editor language id.

    Raises:
        ValueError: If no grammar is known for the language
        ImportError: If the grammar package is not installed
    """
    if language_id in _language_cache:
        return _language_cache[language_id]

    module_info = GRAMMAR_MODULES.get(language_id)
    if not module_info:
        raise ValueError(f"Unsupported language for tree-sitter: {language_id}")

    module_name, func_name = module_info
    try:
        language_module = __import__(module_name)
    except ImportError:
        raise ImportError(
            f"Language package '{module_name}' not installed. "
            f"Install it with: pip install {module_name.replace('_', '-')}"
        )

    lang_obj = getattr(language_module, func_name)()
    # Grammar packages return a PyCapsule that Language wraps
    lang = lang_obj if isinstance(lang_obj, Language) else Language(lang_obj)
    _language_cache[language_id] = lang
    return lang


def get_parser(language_id: str) -> Parser:
    """Cached parser for an editor language id."""
    if language_id in _parser_cache:
        return _parser_cache[language_id]

    parser = Parser(get_grammar(language_id))
    _parser_cache[language_id] = parser
    return parser


def find_parser(language_id: Optional[str]) -> Optional[Parser]:
    """Parser for the language, or None when no grammar is available."""
    if not language_id:
        return None
    try:
        return get_parser(language_id)
    except (ValueError, ImportError) as e:
        logger.debug(f"No syntax support for {language_id}: {e}")
        return None


def node_at_position(root: "Node", position: Position) -> "Node":
    """Smallest node spanning the cursor, the root when none does."""
    point = (position.line, position.character)
    return root.descendant_for_point_range(point, point) or root


def is_multiline_node(node: "Node") -> bool:
    return node.type in MULTILINE_TYPES


def takes_first_block(node: "Node") -> bool:
    """Whether a blank line after complete code ends the completion."""
    return node.type in MULTILINE_OUTSIDE or (
        node.type in MULTILINE_INSIDE and node.child_count > 2
    )


@dataclass
class CursorSyntax:
    """Syntax facts about the cursor, computed once per request.

    Attributes:
        node_type: Type of the smallest syntax node at the cursor
        multiline_required: Whether that node calls for a multi-line completion
        take_first: Whether a blank line after complete code ends the completion
        line_text: Text of the cursor line, prepended when checking completeness
    """

    node_type: str
    multiline_required: bool
    take_first: bool
    line_text: str = ""
    parser: Optional[Parser] = field(default=None, repr=False)

    def is_complete(self, completion: str) -> bool:
        """Check that the cursor line plus ``completion`` parses without errors."""
        if self.parser is None:
            return False
        tree = self.parser.parse(f"{self.line_text}{completion}".encode("utf-8"))
        return not tree.root_node.has_error


def analyze_cursor(
    text: str, language_id: Optional[str], position: Position, line_text: str = ""
) -> Optional[CursorSyntax]:
    """Parse ``text`` and describe the node at ``position``.

    Returns:
        CursorSyntax, or None when the language has no grammar
    """
    parser = find_parser(language_id)
    if parser is None:
        return None

    tree = parser.parse(text.encode("utf-8"))
    node = node_at_position(tree.root_node, position)
    return CursorSyntax(
        node_type=node.type,
        multiline_required=is_multiline_node(node),
        take_first=takes_first_block(node),
        line_text=line_text,
        parser=parser,
    )


def _find_declarations(node: "Node") -> List["Node"]:
    if node.type in DECLARATION_NODE_TYPES:
        return [node]
    found: List["Node"] = []
    for child in node.children:
        found.extend(_find_declarations(child))
    return found


def split_declarations(text: str, parser: Parser) -> List[str]:
    """Source of the outermost declarations of a document.

    Each chunk covers the full lines of one declaration. Chunks that repeat
    an earlier chunk (case-insensitive) are dropped.
    """
    tree = parser.parse(text.encode("utf-8"))
    lines = text.split("\n")

    seen: set[str] = set()
    chunks: List[str] = []
    for node in _find_declarations(tree.root_node):
        start_row, _ = node.start_point
        end_row, _ = node.end_point
        chunk = "\n".join(lines[start_row : end_row + 1]).strip()
        key = chunk.lower()
        if not chunk or key in seen:
            continue
        seen.add(key)
        chunks.append(chunk)
    return chunks
