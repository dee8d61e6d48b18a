"""Symbol, import/export and complexity extraction for TypeScript/JavaScript.

Files are parsed with tree-sitter (tree-sitter-typescript grammars) and the
syntax tree is walked once, dispatching on node type. Call dependencies are a
name-only heuristic: the callee identifier, or the property of a member
expression. They are not binding-resolved.
"""

import posixpath
import threading
from typing import Iterator, Optional

import tree_sitter_typescript as tsts
from tree_sitter import Language, Node, Parser

from ..logging_config import get_logger
from ..models import ExportInfo, FileAnalysis, ImportInfo, ParseError, Symbol, SymbolKind

logger = get_logger(__name__)

TYPESCRIPT_EXTENSIONS = {".ts", ".mts", ".cts", ".js", ".mjs", ".cjs"}
TSX_EXTENSIONS = {".tsx", ".jsx"}

_FUNCTION_NODES = {"function_declaration", "generator_function_declaration"}
_CLASS_NODES = {"class_declaration", "abstract_class_declaration"}
_VARIABLE_NODES = {"lexical_declaration", "variable_declaration"}
_FUNCTION_VALUES = {"arrow_function", "function_expression", "function", "generator_function"}

_DECISION_NODES = {
    "if_statement",
    "ternary_expression",
    "while_statement",
    "do_statement",
    "for_statement",
    "for_in_statement",   # also covers for...of
    "switch_case",
    "catch_clause",
}
_SHORT_CIRCUIT_OPERATORS = {"&&", "||", "??"}

HIGH_COMPLEXITY_THRESHOLD = 10


def is_analyzable(path: str) -> bool:
    _, ext = posixpath.splitext(path.lower())
    return ext in TYPESCRIPT_EXTENSIONS or ext in TSX_EXTENSIONS


def resolve_import_path(from_path: str, specifier: str) -> str:
    """Resolve a relative specifier against the importing file's directory.

    Purely textual: ``..`` segments are collapsed, nothing is checked on disk
    and no extension is added.
    """
    directory = posixpath.dirname(from_path.replace("\\", "/"))
    return posixpath.normpath(posixpath.join(directory, specifier))


def is_relative_specifier(specifier: str) -> bool:
    return specifier.startswith("./") or specifier.startswith("../") or specifier in (".", "..")


def count_lines_of_code(source: str) -> int:
    """Non-blank lines that do not start with a comment opener."""
    count = 0
    for line in source.split("\n"):
        stripped = line.strip()
        if stripped and not stripped.startswith("//") and not stripped.startswith("/*"):
            count += 1
    return count


# =============================================================================
# Node helpers
# =============================================================================

def _text(node: Optional[Node]) -> str:
    if node is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def _squash(text: str) -> str:
    return " ".join(text.split())


def _has_keyword(node: Node, keyword: str) -> bool:
    return any(not child.is_named and child.type == keyword for child in node.children)


def _first_child(node: Node, node_type: str) -> Optional[Node]:
    for child in node.named_children:
        if child.type == node_type:
            return child
    return None


def _string_value(node: Optional[Node]) -> Optional[str]:
    if node is None or node.type != "string":
        return None
    return _text(node)[1:-1]


def _type_text(annotation: Optional[Node], default: str) -> str:
    if annotation is None:
        return default
    text = _text(annotation).strip()
    if text.startswith(":"):
        text = text[1:].strip()
    return _squash(text) or default


def _walk(node: Node) -> Iterator[Node]:
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def _count_decision_points(node: Node) -> int:
    count = 0
    for current in _walk(node):
        if current.type in _DECISION_NODES:
            count += 1
        elif current.type == "binary_expression":
            operator = current.child_by_field_name("operator")
            if operator is not None and operator.type in _SHORT_CIRCUIT_OPERATORS:
                count += 1
    return count


def calculate_complexity(node: Node) -> int:
    """Cyclomatic complexity of a declaration: 1 + decision points within it."""
    return 1 + _count_decision_points(node)


def _collect_calls(node: Optional[Node]) -> list[str]:
    if node is None:
        return []
    calls: list[str] = []
    for current in _walk(node):
        if current.type != "call_expression":
            continue
        func = current.child_by_field_name("function")
        if func is None:
            continue
        name = None
        if func.type == "identifier":
            name = _text(func)
        elif func.type == "member_expression":
            prop = func.child_by_field_name("property")
            if prop is not None:
                name = _text(prop)
        if name and name not in calls:
            calls.append(name)
    return calls


def _outer(node: Node) -> Node:
    """The export statement wrapping a declaration, or the declaration itself."""
    parent = node.parent
    if parent is not None and parent.type == "export_statement":
        return parent
    return node


def _documentation(node: Node) -> Optional[str]:
    """The /** ... */ block immediately preceding a declaration, if any."""
    target = _outer(node)
    prev = target.prev_named_sibling
    if prev is None or prev.type != "comment":
        return None
    if target.start_point[0] - prev.end_point[0] > 1:
        return None
    raw = _text(prev)
    if not raw.startswith("/**"):
        return None
    lines = []
    for line in raw[3:-2].split("\n"):
        line = line.strip()
        if line.startswith("*"):
            line = line[1:].strip()
        if line:
            lines.append(line)
    return "\n".join(lines) or None


def _is_module_scope(node: Node) -> bool:
    parent = node.parent
    if parent is not None and parent.type == "export_statement":
        parent = parent.parent
    return parent is not None and parent.type == "program"


# =============================================================================
# Extractor
# =============================================================================

class SymbolExtractor:
    """Parses one file at a time into a FileAnalysis.

    Parsers are created lazily per grammar and shared; parsing is serialized
    because tree-sitter parsers are not thread-safe.
    """

    def __init__(self):
        self._parsers: dict[str, Parser] = {}
        self._lock = threading.Lock()

    def _parser_for(self, path: str) -> Optional[Parser]:
        _, ext = posixpath.splitext(path.lower())
        if ext in TSX_EXTENSIONS:
            grammar = "tsx"
        elif ext in TYPESCRIPT_EXTENSIONS:
            grammar = "typescript"
        else:
            return None
        parser = self._parsers.get(grammar)
        if parser is None:
            if grammar == "tsx":
                language = Language(tsts.language_tsx())
            else:
                language = Language(tsts.language_typescript())
            parser = Parser(language)
            self._parsers[grammar] = parser
        return parser

    def analyze(self, file_path: str, source: str) -> Optional[FileAnalysis]:
        """Analyze one file.

        Returns:
            FileAnalysis, or None when the file is not TypeScript/JavaScript

        Raises:
            ParseError: If the parser or the tree walk fails
        """
        with self._lock:
            parser = self._parser_for(file_path)
            if parser is None:
                return None
            try:
                tree = parser.parse(source.encode("utf-8"))
            except Exception as e:
                raise ParseError(file_path, f"parser failed: {e}") from e

        if tree.root_node.has_error:
            # tree-sitter recovers from syntax errors; keep what it could parse
            logger.debug("Syntax errors in %s, analyzing partial tree", file_path)

        try:
            analysis = self._walk_tree(file_path, tree.root_node)
        except Exception as e:
            raise ParseError(file_path, f"extraction failed: {e}") from e

        analysis.lines_of_code = count_lines_of_code(source)
        logger.debug(
            "Parsed %s: %s symbols, %s imports, %s exports",
            file_path, len(analysis.symbols), len(analysis.imports), len(analysis.exports),
        )
        return analysis

    def _walk_tree(self, file_path: str, root: Node) -> FileAnalysis:
        analysis = FileAnalysis(file_path=file_path)

        # (node, inside a declaration whose complexity is already counted)
        stack: list[tuple[Node, bool]] = [(root, False)]
        while stack:
            node, nested = stack.pop()
            kind = node.type
            counted = False
            nested_values = False

            if kind == "import_statement":
                self._handle_import(node, analysis)
            elif kind == "export_statement":
                self._handle_export(node, analysis)
            elif kind == "call_expression":
                self._handle_dynamic_import(node, analysis)
            elif kind in _FUNCTION_NODES:
                symbol = self._function_symbol(node, file_path)
                if symbol is not None:
                    analysis.symbols.append(symbol)
                    counted = True
            elif kind in _CLASS_NODES:
                symbol = self._class_symbol(node, file_path)
                if symbol is not None:
                    analysis.symbols.append(symbol)
                    counted = True
            elif kind == "interface_declaration":
                analysis.symbols.append(self._interface_symbol(node, file_path))
            elif kind == "type_alias_declaration":
                analysis.symbols.append(self._type_symbol(node, file_path))
            elif kind == "enum_declaration":
                analysis.symbols.append(self._enum_symbol(node, file_path))
            elif kind in _VARIABLE_NODES and _is_module_scope(node):
                for symbol in self._variable_symbols(node, file_path):
                    analysis.symbols.append(symbol)
                    if symbol.complexity:
                        if not nested:
                            analysis.complexity += symbol.complexity
                        nested_values = True

            if counted and not nested:
                analysis.complexity += analysis.symbols[-1].complexity

            inner = nested or counted or nested_values
            for child in reversed(node.children):
                stack.append((child, inner))

        return analysis

    # ---------------------------------------------------------------- imports

    def _add_dependency(self, analysis: FileAnalysis, specifier: str) -> None:
        if not is_relative_specifier(specifier):
            return
        resolved = resolve_import_path(analysis.file_path, specifier)
        if resolved != analysis.file_path and resolved not in analysis.dependencies:
            analysis.dependencies.append(resolved)

    def _handle_import(self, node: Node, analysis: FileAnalysis) -> None:
        module = _string_value(node.child_by_field_name("source"))
        if module is None:
            return
        info = ImportInfo(
            module_name=module,
            line=node.start_point[0] + 1,
            is_type_only=_has_keyword(node, "type"),
        )
        clause = _first_child(node, "import_clause")
        if clause is not None:
            for child in clause.named_children:
                if child.type == "identifier":
                    info.imported_symbols.append(_text(child))
                    info.is_default = True
                elif child.type == "namespace_import":
                    ident = _first_child(child, "identifier")
                    if ident is not None:
                        info.imported_symbols.append(_text(ident))
                elif child.type == "named_imports":
                    for spec in child.named_children:
                        if spec.type == "import_specifier":
                            info.imported_symbols.append(_text(spec.child_by_field_name("name")))
        analysis.imports.append(info)
        self._add_dependency(analysis, module)

    def _handle_dynamic_import(self, node: Node, analysis: FileAnalysis) -> None:
        """require('./x') and import('./x')."""
        func = node.child_by_field_name("function")
        if func is None:
            return
        if not (func.type == "import" or (func.type == "identifier" and _text(func) == "require")):
            return
        args = node.child_by_field_name("arguments")
        if args is None:
            return
        module = _string_value(_first_child(args, "string"))
        if module is None:
            return
        analysis.imports.append(ImportInfo(module_name=module, line=node.start_point[0] + 1))
        self._add_dependency(analysis, module)

    def _handle_export(self, node: Node, analysis: FileAnalysis) -> None:
        line = node.start_point[0] + 1
        is_default = _has_keyword(node, "default")

        source = _string_value(node.child_by_field_name("source"))
        if source is not None:
            self._add_dependency(analysis, source)

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            names = self._declared_names(declaration) or ["default"]
            for name in names:
                analysis.exports.append(ExportInfo(name, is_default, line))
            return

        clause = _first_child(node, "export_clause")
        if clause is not None:
            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                exported = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                name = _text(exported)
                analysis.exports.append(ExportInfo(name, name == "default", line))
            if source is not None:
                analysis.imports.append(ImportInfo(
                    module_name=source,
                    imported_symbols=[_text(s.child_by_field_name("name"))
                                      for s in clause.named_children if s.type == "export_specifier"],
                    line=line,
                ))
            return

        if source is not None:
            # export * from './x' / export * as ns from './x'
            namespace = _first_child(node, "namespace_export")
            name = _text(_first_child(namespace, "identifier")) if namespace is not None else "*"
            analysis.exports.append(ExportInfo(name or "*", False, line))
            analysis.imports.append(ImportInfo(module_name=source, line=line))
            return

        if is_default:
            value = node.child_by_field_name("value")
            name = _text(value) if value is not None and value.type == "identifier" else "default"
            analysis.exports.append(ExportInfo(name, True, line))

    @staticmethod
    def _declared_names(declaration: Node) -> list[str]:
        if declaration.type in _VARIABLE_NODES:
            names = []
            for declarator in declaration.named_children:
                if declarator.type == "variable_declarator":
                    name = declarator.child_by_field_name("name")
                    if name is not None and name.type == "identifier":
                        names.append(_text(name))
            return names
        name = declaration.child_by_field_name("name")
        return [_text(name)] if name is not None else []

    # ----------------------------------------------------------- declarations

    def _make_symbol(
        self,
        node: Node,
        name: str,
        kind: SymbolKind,
        file_path: str,
        signature: str,
        dependencies: Optional[list[str]] = None,
        complexity: int = 0,
    ) -> Symbol:
        outer = _outer(node)
        return Symbol(
            name=name,
            kind=kind,
            file_path=file_path,
            line=outer.start_point[0] + 1,
            column=outer.start_point[1] + 1,
            signature=signature,
            documentation=_documentation(node),
            is_exported=outer is not node,
            dependencies=dependencies or [],
            end_line=outer.end_point[0] + 1,
            complexity=complexity,
        )

    def _parameters(self, params: Optional[Node]) -> str:
        if params is None:
            return ""
        rendered = []
        for param in params.named_children:
            if param.type == "comment":
                continue
            if param.type in ("required_parameter", "optional_parameter"):
                pattern = param.child_by_field_name("pattern")
                name = _squash(_text(pattern) if pattern is not None else _text(param))
                if param.type == "optional_parameter":
                    name += "?"
                ptype = _type_text(param.child_by_field_name("type"), "any")
            else:
                name, ptype = _squash(_text(param)), "any"
            rendered.append(f"{name}: {ptype}")
        return ", ".join(rendered)

    def _function_symbol(self, node: Node, file_path: str) -> Optional[Symbol]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        name = _text(name_node)
        params = self._parameters(node.child_by_field_name("parameters"))
        returns = _type_text(node.child_by_field_name("return_type"), "void")
        prefix = "async " if _has_keyword(node, "async") else ""
        star = "*" if node.type == "generator_function_declaration" else ""
        return self._make_symbol(
            node, name, SymbolKind.FUNCTION, file_path,
            f"{prefix}function{star} {name}({params}): {returns}",
            dependencies=_collect_calls(node.child_by_field_name("body")),
            complexity=calculate_complexity(node),
        )

    def _class_symbol(self, node: Node, file_path: str) -> Optional[Symbol]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        name = _text(name_node)

        heritage = []
        for child in node.children:
            if child.type != "class_heritage":
                continue
            for clause in child.named_children:
                if clause.type in ("extends_clause", "implements_clause"):
                    for item in clause.named_children:
                        if item.type != "type_arguments":
                            heritage.append(_squash(_text(item)))
                else:
                    heritage.append(_squash(_text(clause)))

        keyword = "abstract class" if node.type == "abstract_class_declaration" else "class"
        signature = f"{keyword} {name} extends {', '.join(heritage)}" if heritage else f"{keyword} {name}"
        dependencies = _collect_calls(node.child_by_field_name("body"))
        for base in heritage:
            if base not in dependencies:
                dependencies.append(base)
        return self._make_symbol(
            node, name, SymbolKind.CLASS, file_path, signature,
            dependencies=dependencies,
            complexity=calculate_complexity(node),
        )

    def _interface_symbol(self, node: Node, file_path: str) -> Symbol:
        name = _text(node.child_by_field_name("name"))
        extends = _first_child(node, "extends_type_clause")
        bases = [_squash(_text(t)) for t in extends.named_children] if extends is not None else []
        signature = f"interface {name} extends {', '.join(bases)}" if bases else f"interface {name}"
        return self._make_symbol(node, name, SymbolKind.INTERFACE, file_path, signature)

    def _type_symbol(self, node: Node, file_path: str) -> Symbol:
        name = _text(node.child_by_field_name("name"))
        value = _squash(_text(node.child_by_field_name("value")))
        return self._make_symbol(node, name, SymbolKind.TYPE, file_path, f"type {name} = {value}")

    def _enum_symbol(self, node: Node, file_path: str) -> Symbol:
        name = _text(node.child_by_field_name("name"))
        members = []
        body = node.child_by_field_name("body")
        if body is not None:
            for member in body.named_children:
                if member.type == "enum_assignment":
                    members.append(_text(member.child_by_field_name("name")))
                elif member.type in ("property_identifier", "string"):
                    members.append(_text(member))
        return self._make_symbol(
            node, name, SymbolKind.ENUM, file_path, f"enum {name} {{ {', '.join(members)} }}"
        )

    def _variable_symbols(self, node: Node, file_path: str) -> list[Symbol]:
        keyword = next(
            (c.type for c in node.children if not c.is_named and c.type in ("const", "let", "var")),
            "var",
        )
        kind = SymbolKind.CONST if keyword == "const" else SymbolKind.VARIABLE
        symbols = []
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            if name_node is None or name_node.type != "identifier":
                continue  # destructuring patterns
            name = _text(name_node)
            vtype = _type_text(declarator.child_by_field_name("type"), "any")
            value = declarator.child_by_field_name("value")
            complexity = 0
            if value is not None and value.type in _FUNCTION_VALUES:
                complexity = calculate_complexity(value)
            symbols.append(self._make_symbol(
                node, name, kind, file_path, f"{keyword} {name}: {vtype}",
                dependencies=_collect_calls(value),
                complexity=complexity,
            ))
        return symbols


def get_complexity_metrics(analysis: FileAnalysis) -> dict:
    """Summarize per-declaration complexity of one analyzed file."""
    callables = [s for s in analysis.symbols if s.complexity > 0]
    total = analysis.complexity
    return {
        "total_complexity": total,
        "average_complexity": total / len(callables) if callables else 0.0,
        "max_complexity": max((s.complexity for s in callables), default=0),
        "high_complexity_symbols": [s for s in callables if s.complexity > HIGH_COMPLEXITY_THRESHOLD],
    }
