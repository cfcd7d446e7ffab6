"""
Execution harness and result decoding for agent-authored Python code.

User code is indented into a generated ``try`` harness and executed with
``exec`` in an explicit namespace. The harness records whether a ``result``
binding was produced and captures any fault, so every run ends in exactly
one ``ExecutionOutcome``:

- ``ExecutionOk``: text result (``str(result)`` or a completion message)
- ``ExecutionMedia``: ``result = ("image" | "video" | "audio", path)``
- ``ExecutionFault``: type name, message and traceback of the fault

The interpreter trusts the host process. Namespaces are fresh per call
unless a caller passes an ``InterpreterSession`` namespace explicitly.
"""

import ast
import io
import linecache
import os
import sys
import threading
import tokenize
import traceback
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Literal, Mapping, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .base import MediaKind, MediaReference, ToolOutput, normalize_text
from .import_policy import ImportCheck


COMPLETED_MESSAGE = "Execution completed successfully"

RESULT_NAME = "result"

_STATE_NAME = "__harness_state__"

HARNESS_TEMPLATE = """\
{future}import os as __harness_os__
OUTPUT_DIR = {output_dir!r}
__harness_os__.environ['OUTPUT_DIR'] = OUTPUT_DIR

try:
{body}
    __harness_state__['has_result'] = 'result' in globals()
except BaseException as __harness_exc__:
    import traceback as __harness_traceback__
    __harness_state__['fault'] = (
        type(__harness_exc__).__name__,
        str(__harness_exc__),
        __harness_traceback__.format_exc(),
    )
"""


class ExecutionOk(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag: Literal["ok"] = "ok"
    text: str
    output: str = ""


class ExecutionMedia(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag: Literal["media"] = "media"
    kind: MediaKind
    path: str
    output: str = ""


class ExecutionFault(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag: Literal["error"] = "error"
    diagnostic: str
    output: str = ""


ExecutionOutcome = Union[ExecutionOk, ExecutionMedia, ExecutionFault]


_capture = threading.local()
_router_lock = threading.Lock()


class _ThreadRouter:
    """Process stream stand-in that sends writes from capturing threads to their buffer.

    Several runs may execute on worker threads at once; each thread's writes
    land in its own buffer and every other thread writes through unchanged.
    """

    def __init__(self, name: str, fallback: Any):
        self._name = name
        self._fallback = fallback

    def _target(self) -> Any:
        buffer = getattr(_capture, self._name, None)
        return buffer if buffer is not None else self._fallback

    def write(self, text: str) -> int:
        return self._target().write(text)

    def flush(self) -> None:
        self._target().flush()

    def __getattr__(self, attr: str) -> Any:
        return getattr(self._fallback, attr)


@contextmanager
def _capture_output(stdout_buffer: io.StringIO, stderr_buffer: io.StringIO) -> Iterator[None]:
    with _router_lock:
        for name in ("stdout", "stderr"):
            current = getattr(sys, name)
            if not isinstance(current, _ThreadRouter):
                setattr(sys, name, _ThreadRouter(name, current))

    _capture.stdout = stdout_buffer
    _capture.stderr = stderr_buffer
    try:
        yield
    finally:
        _capture.stdout = None
        _capture.stderr = None


class InterpreterSession:
    """Opt-in namespace that persists bindings across interpreter calls."""

    def __init__(self):
        self.namespace: Dict[str, Any] = {}
        self.lock = threading.Lock()

    def variables(self) -> Dict[str, str]:
        """Map user-visible variable names to their type names."""
        return {
            name: type(value).__name__
            for name, value in self.namespace.items()
            if not name.startswith("_") and name != "OUTPUT_DIR"
        }

    def clear(self) -> None:
        self.namespace.clear()


def format_fault(type_name: str, message: str, trace: str) -> str:
    """Join a fault's type name, message and traceback into one diagnostic."""
    return f"{type_name}: {message}\n\nTraceback:\n{trace}"


_TEMPLATE_STARTS = tuple(
    getattr(tokenize, name) for name in ("FSTRING_START", "TSTRING_START") if hasattr(tokenize, name)
)
_TEMPLATE_ENDS = tuple(
    getattr(tokenize, name) for name in ("FSTRING_END", "TSTRING_END") if hasattr(tokenize, name)
)


def _literal_rows(code: str) -> Set[int]:
    """Rows (1-based) that continue a string literal opened on an earlier row."""
    rows: Set[int] = set()
    opened: List[int] = []
    try:
        for token in tokenize.generate_tokens(io.StringIO(code).readline):
            if token.type == tokenize.STRING:
                rows.update(range(token.start[0] + 1, token.end[0] + 1))
            elif token.type in _TEMPLATE_STARTS:
                opened.append(token.start[0])
            elif token.type in _TEMPLATE_ENDS and opened:
                rows.update(range(opened.pop() + 1, token.end[0] + 1))
    except (tokenize.TokenError, SyntaxError):
        # Code that does not tokenize is indented line by line
        return set()
    return rows


def _split_future_imports(code: str) -> Tuple[str, str]:
    """Separate leading ``from __future__`` statements from the rest of ``code``.

    Returns the statements and the code with their rows left blank, so the
    remaining line numbers do not move.
    """
    try:
        tree = ast.parse(code)
    except SyntaxError:
        return "", code

    lines = io.StringIO(code).readlines()
    rows: List[int] = []
    for index, node in enumerate(tree.body):
        if index == 0 and isinstance(node, ast.Expr) and isinstance(node.value, ast.Constant):
            continue
        if not (isinstance(node, ast.ImportFrom) and node.module == "__future__"):
            break
        rows.extend(row for row in range(node.lineno - 1, node.end_lineno) if row not in rows)

    future = "".join(lines[row].rstrip("\r\n") + "\n" for row in rows)
    for row in rows:
        lines[row] = "\n"
    return future, "".join(lines)


def build_harness(code: str, output_dir: str) -> str:
    """Generate the wrapper text that frames ``code`` for execution.

    Every line is indented into the ``try`` block except rows inside a
    multi-line string literal, whose text must not change. Leading
    ``__future__`` imports are placed at the top of the harness.
    """
    future, code = _split_future_imports(code)
    verbatim = _literal_rows(code)
    body = "".join(
        line if row in verbatim else "    " + line
        for row, line in enumerate(io.StringIO(code).readlines(), start=1)
    )
    return HARNESS_TEMPLATE.format(future=future, output_dir=str(output_dir), body=body)


def classify_result(value: Any, output: str = "") -> ExecutionOutcome:
    """Classify the value bound to ``result`` after a successful run."""
    if (
        isinstance(value, (tuple, list))
        and len(value) == 2
        and isinstance(value[0], str)
        and value[0] in {kind.value for kind in MediaKind}
        and isinstance(value[1], (str, os.PathLike))
    ):
        return ExecutionMedia(kind=MediaKind(value[0]), path=normalize_text(value[1]), output=output)

    return ExecutionOk(text=str(value), output=output)


def _fault_from_exception(exc: BaseException, output: str = "") -> ExecutionFault:
    if isinstance(exc, SyntaxError):
        trace = "".join(traceback.format_exception_only(type(exc), exc))
    else:
        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return ExecutionFault(
        diagnostic=format_fault(type(exc).__name__, str(exc), trace),
        output=output,
    )


def execute_code(
    code: str,
    output_dir: str,
    bindings: Optional[Mapping[str, Any]] = None,
    namespace: Optional[Dict[str, Any]] = None,
) -> ExecutionOutcome:
    """Execute ``code`` inside the harness and classify what it produced.

    Args:
        code: Source text that already passed the import policy
        output_dir: Managed output directory exposed as ``OUTPUT_DIR``
        bindings: Names injected as pre-set variables
        namespace: Explicit session namespace; a fresh one is used when omitted

    Returns:
        Exactly one ExecutionOutcome. Never raises.
    """
    stdout_buffer = io.StringIO()
    stderr_buffer = io.StringIO()
    filename = f"<python_interpreter-{uuid.uuid4().hex[:8]}>"

    def captured() -> str:
        parts = []
        if stdout_buffer.getvalue():
            parts.append(stdout_buffer.getvalue().rstrip())
        if stderr_buffer.getvalue():
            parts.append(f"STDERR: {stderr_buffer.getvalue().rstrip()}")
        return "\n".join(parts)

    try:
        # Compile the bare code first so syntax errors report user line numbers
        compile(code, "<python_interpreter>", "exec")

        harness = build_harness(code, output_dir)
        compiled = compile(harness, filename, "exec")
        linecache.cache[filename] = (len(harness), None, harness.splitlines(True), filename)

        scope = namespace if namespace is not None else {}
        scope.pop(RESULT_NAME, None)
        if bindings:
            scope.update(bindings)
        state: Dict[str, Any] = {"has_result": False, "fault": None}
        scope[_STATE_NAME] = state

        try:
            with _capture_output(stdout_buffer, stderr_buffer):
                exec(compiled, scope)
        finally:
            scope.pop(_STATE_NAME, None)

        if state["fault"] is not None:
            type_name, message, trace = state["fault"]
            return ExecutionFault(diagnostic=format_fault(type_name, message, trace), output=captured())

        if not state["has_result"]:
            return ExecutionOk(text=COMPLETED_MESSAGE, output=captured())

        return classify_result(scope[RESULT_NAME], captured())

    except BaseException as e:
        return _fault_from_exception(e, captured())

    finally:
        linecache.cache.pop(filename, None)
        stdout_buffer.close()
        stderr_buffer.close()


def decode_outcome(outcome: ExecutionOutcome, output_dir: Optional[str] = None) -> ToolOutput:
    """Turn an ExecutionOutcome into the value returned to the agent.

    Media paths are not checked for existence; relative ones resolve under
    ``output_dir`` when it is given.
    """
    if isinstance(outcome, ExecutionOk):
        return outcome.text

    if isinstance(outcome, ExecutionMedia):
        path = outcome.path
        if output_dir is not None and not os.path.isabs(path):
            path = os.path.join(str(output_dir), path)
        return MediaReference(kind=outcome.kind, path=path)

    return f"Error: {outcome.diagnostic}"


def describe_rejection(check: ImportCheck) -> str:
    """Describe an import policy rejection, listing every offending module."""
    return f"Unauthorized imports: {', '.join(check.unauthorized)}"
