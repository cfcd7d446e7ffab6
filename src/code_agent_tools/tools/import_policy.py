"""
Import allow-listing for agent-authored Python code.

This is lexical analysis over the submitted source, not a security boundary:
``__import__``, ``importlib`` and other dynamic imports are not detected.
"""

import ast
import re
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field


# Safe standard library modules for agents that need no third-party imports
SAFE_STDLIB_IMPORTS: Tuple[str, ...] = (
    "math",
    "statistics",
    "decimal",
    "fractions",
    "random",
    "datetime",
    "time",
    "calendar",
    "collections",
    "itertools",
    "functools",
    "string",
    "textwrap",
    "re",
    "json",
    "csv",
    "io",
    "base64",
)

_MODULE = r"([a-zA-Z_][a-zA-Z0-9_\.]*)"

# Used only when the source does not parse
_IMPORT_PATTERNS = (
    re.compile(rf"^\s*import\s+{_MODULE}", re.MULTILINE),
    re.compile(rf"^\s*import\s+{_MODULE}\s+as\s+", re.MULTILINE),
    re.compile(rf"^\s*from\s+{_MODULE}\s+import\s+", re.MULTILINE),
)


class ImportCheck(BaseModel):
    """Outcome of an import policy check."""

    allowed: bool
    unauthorized: List[str] = Field(default_factory=list)


def _dedupe(names: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for name in names:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


def _scan_tree(tree: ast.AST) -> List[str]:
    # ast.walk is breadth-first; sort to report in source order
    nodes = sorted(
        (node for node in ast.walk(tree) if isinstance(node, (ast.Import, ast.ImportFrom))),
        key=lambda node: (node.lineno, node.col_offset),
    )
    found = []
    for node in nodes:
        if isinstance(node, ast.Import):
            found.extend(alias.name for alias in node.names)
        # Relative imports (from . import x) name no top-level module
        elif node.module and node.level == 0:
            found.append(node.module)
    return found


def _scan_text(code: str) -> List[str]:
    matches = []
    for pattern in _IMPORT_PATTERNS:
        matches.extend((match.start(), match.group(1)) for match in pattern.finditer(code))
    matches.sort(key=lambda item: item[0])
    return [name.rstrip(".") for _, name in matches]


def extract_imports(code: str) -> List[str]:
    """List the module paths named by import statements, in first-seen order.

    Covers ``import X``, ``import X as Y`` and ``from X import Y``, with
    dotted paths preserved. Falls back to line-based patterns when the code
    does not parse.
    """
    try:
        tree = ast.parse(code)
    except (SyntaxError, ValueError):
        return _dedupe(_scan_text(code))

    return _dedupe(_scan_tree(tree))


class ImportPolicy:
    """Allow-list of module prefixes; ``None`` means unrestricted."""

    def __init__(self, allowed_imports: Optional[Iterable[str]] = None):
        self._allowed: Optional[Tuple[str, ...]] = (
            tuple(_dedupe(allowed_imports)) if allowed_imports is not None else None
        )

    @property
    def allowed_imports(self) -> Optional[Tuple[str, ...]]:
        return self._allowed

    @property
    def is_restricted(self) -> bool:
        return self._allowed is not None

    def is_authorized(self, module_name: str) -> bool:
        """A module is authorized if it is an allowed entry or a dotted descendant of one."""
        if self._allowed is None:
            return True
        return any(
            module_name == allowed or module_name.startswith(allowed + ".")
            for allowed in self._allowed
        )

    def check(self, code: str) -> ImportCheck:
        """Check every import in ``code`` and report all unauthorized modules."""
        if self._allowed is None:
            return ImportCheck(allowed=True)

        unauthorized = [name for name in extract_imports(code) if not self.is_authorized(name)]
        return ImportCheck(allowed=not unauthorized, unauthorized=unauthorized)

    def __repr__(self) -> str:
        return f"ImportPolicy(allowed_imports={list(self._allowed) if self._allowed is not None else None})"
