"""
TypeScript / JavaScript symbol extraction with tree-sitter.

Walks the syntax tree of one file and emits a ParsedSymbol for every
function, class, interface, type alias and variable declaration at any
depth. Exported and internal declarations are both kept; quality filtering
happens later in scoring.py.
"""

import logging
import os
import re
from typing import Dict, Iterable, List, Optional

import tree_sitter_typescript as tsts
from tree_sitter import Language, Node, Parser

from .models import JSDOC_LOOKBACK_CHARS, ParsedSymbol, SourceFile

logger = logging.getLogger(__name__)

TSX_EXTENSIONS = {".tsx", ".jsx"}

FUNCTION_NODES = {
    "function_declaration",
    "generator_function_declaration",
    "function_signature",
}
CLASS_NODES = {"class_declaration", "abstract_class_declaration"}
VARIABLE_NODES = {"lexical_declaration", "variable_declaration"}
PARAMETER_NODES = {"required_parameter", "optional_parameter"}

# Wrappers between a declaration and the export_statement that exports it
TRANSPARENT_PARENTS = {"ambient_declaration"}

_JSDOC_BLOCK = re.compile(r"/\*\*(?:(?!\*/)[\s\S])*\*/\s*")


class SourceParser:
    """
    Parses TypeScript and JavaScript sources into ParsedSymbol lists.

    ``.tsx``/``.jsx`` files use the TSX grammar; everything else uses the
    TypeScript grammar, which also accepts plain JavaScript.
    """

    def __init__(self):
        self._parsers: Dict[str, Parser] = {
            "typescript": Parser(Language(tsts.language_typescript())),
            "tsx": Parser(Language(tsts.language_tsx())),
        }

    def parse(self, file_path: str, content: str) -> List[ParsedSymbol]:
        """
        Extract every named declaration from one file.

        Args:
            file_path: Path used for grammar selection and reported on symbols
            content: Source text

        Returns:
            Symbols in document order
        """
        ext = os.path.splitext(file_path)[1].lower()
        parser = self._parsers["tsx" if ext in TSX_EXTENSIONS else "typescript"]

        source = content.encode("utf-8")
        tree = parser.parse(source)

        visitor = _SymbolVisitor(source, file_path)
        visitor.visit(tree.root_node)
        return visitor.symbols


_default_parser: Optional[SourceParser] = None


def get_parser() -> SourceParser:
    """Return the process-wide parser, building the grammars on first use."""
    global _default_parser
    if _default_parser is None:
        _default_parser = SourceParser()
    return _default_parser


def parse_source_file(file_path: str, content: str) -> List[ParsedSymbol]:
    """Parse a single file with the shared parser."""
    return get_parser().parse(file_path, content)


def parse_source_files(
    files: Iterable[SourceFile],
    parser: Optional[SourceParser] = None,
) -> List[ParsedSymbol]:
    """
    Parse a batch of files.

    A file that fails to parse contributes zero symbols and is logged; the
    rest of the batch continues.
    """
    parser = parser or get_parser()
    symbols: List[ParsedSymbol] = []

    for source_file in files:
        try:
            symbols.extend(parser.parse(source_file.path, source_file.content))
        except Exception as e:
            logger.warning("Failed to parse %s: %s", source_file.path, e)

    return symbols


class _SymbolVisitor:
    """Collects symbols from one syntax tree."""

    def __init__(self, source: bytes, file_path: str):
        self._source = source
        self._file_path = file_path
        self.symbols: List[ParsedSymbol] = []

    def visit(self, node: Node) -> None:
        if node.type in FUNCTION_NODES:
            self._add(self._parse_function(node))
        elif node.type in CLASS_NODES:
            self._add(self._parse_class(node))
        elif node.type == "interface_declaration":
            self._add(self._parse_named(node, "interface"))
        elif node.type == "type_alias_declaration":
            self._add(self._parse_named(node, "type"))
        elif node.type in VARIABLE_NODES:
            self.symbols.extend(self._parse_variables(node))

        for child in node.children:
            self.visit(child)

    def _add(self, symbol: Optional[ParsedSymbol]) -> None:
        if symbol:
            self.symbols.append(symbol)

    # ------------------------------------------------------------------
    # Declaration kinds
    # ------------------------------------------------------------------

    def _parse_function(self, node: Node) -> Optional[ParsedSymbol]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None

        name = self._text(name_node)
        params_node = node.child_by_field_name("parameters")
        param_nodes = self._parameter_nodes(params_node)
        return_node = node.child_by_field_name("return_type")
        return_type = self._annotation(return_node)

        params = ", ".join(self._text(p) for p in param_nodes)
        signature = f"function {name}({params})"
        if return_type:
            signature += f": {return_type}"

        return self._build(
            node,
            kind="function",
            name=name,
            signature=signature,
            parameters=[self._describe_parameter(p) for p in param_nodes],
            return_type=return_type or "any",
        )

    def _parse_class(self, node: Node) -> Optional[ParsedSymbol]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None

        name = self._text(name_node)
        heritage = next(
            (self._text(c) for c in node.children if c.type == "class_heritage"),
            None,
        )
        prefix = "abstract class" if node.type == "abstract_class_declaration" else "class"
        signature = f"{prefix} {name}" + (f" {heritage}" if heritage else "")

        return self._build(node, kind="class", name=name, signature=signature)

    def _parse_named(self, node: Node, kind: str) -> Optional[ParsedSymbol]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        name = self._text(name_node)
        return self._build(node, kind=kind, name=name, signature=f"{kind} {name}")

    def _parse_variables(self, node: Node) -> List[ParsedSymbol]:
        kind = "const" if self._declaration_keyword(node) == "const" else "variable"
        symbols = []

        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            # Destructuring patterns have no single name
            if name_node is None or name_node.type != "identifier":
                continue

            name = self._text(name_node)
            type_annotation = self._annotation(declarator.child_by_field_name("type"))
            signature = f"{kind} {name}" + (f": {type_annotation}" if type_annotation else "")
            symbols.append(self._build(node, kind=kind, name=name, signature=signature))

        return symbols

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build(self, node: Node, kind: str, name: str, signature: str, **extra) -> ParsedSymbol:
        statement = self._statement_node(node)
        return ParsedSymbol(
            kind=kind,
            name=name,
            signature=signature,
            implementation=self._text(statement),
            jsdoc=self._jsdoc_before(statement),
            file_path=self._file_path,
            start_line=statement.start_point[0] + 1,
            end_line=statement.end_point[0] + 1,
            is_exported=statement.type == "export_statement",
            **extra,
        )

    def _statement_node(self, node: Node) -> Node:
        """The export_statement wrapping ``node`` if there is one, else ``node``."""
        parent = node.parent
        while parent is not None and parent.type in TRANSPARENT_PARENTS:
            parent = parent.parent
        if parent is not None and parent.type == "export_statement":
            return parent
        return node

    def _jsdoc_before(self, node: Node) -> Optional[str]:
        start = node.start_byte
        # Over-read bytes so multi-byte characters still leave a full char window
        window = self._source[max(0, start - JSDOC_LOOKBACK_CHARS * 4):start]
        text_before = window.decode("utf-8", errors="ignore")[-JSDOC_LOOKBACK_CHARS:]
        # Only the last opener can start a block that ends right at the declaration
        opener = text_before.rfind("/**")
        if opener < 0:
            return None
        match = _JSDOC_BLOCK.fullmatch(text_before, opener)
        return match.group(0).strip() if match else None

    def _declaration_keyword(self, node: Node) -> str:
        kind_node = node.child_by_field_name("kind")
        if kind_node is not None:
            return self._text(kind_node)
        return node.children[0].type if node.children else ""

    def _parameter_nodes(self, params_node: Optional[Node]) -> List[Node]:
        if params_node is None:
            return []
        return [c for c in params_node.named_children if c.type in PARAMETER_NODES]

    def _describe_parameter(self, param: Node) -> str:
        pattern = param.child_by_field_name("pattern") or param.child_by_field_name("name")
        name = self._text(pattern) if pattern is not None else self._text(param)
        param_type = self._annotation(param.child_by_field_name("type"))
        return f"{name}: {param_type or 'any'}"

    def _annotation(self, node: Optional[Node]) -> Optional[str]:
        """Type text from a type_annotation node, without the leading colon."""
        if node is None:
            return None
        text = self._text(node).strip()
        if text.startswith(":"):
            text = text[1:].strip()
        return text or None

    def _text(self, node: Node) -> str:
        return self._source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")
