"""
Tool system for code agents.
Provides the uniform tool descriptor, the Python interpreter, and the
Wikipedia, finance, image and vision tool sets.
"""

from typing import Iterable, List, Optional

from .base import (
    BaseTool,
    MediaKind,
    MediaReference,
    Safety,
    ToolConfig,
    ToolDescriptor,
    ToolError,
    ToolInput,
    ToolOutput,
    ToolRegistry,
    ToolResult,
    ToolStatus,
    get_tool,
    get_tool_registry,
    register_tool,
)
from .finance import finance_tools
from .image import image_tools
from .import_policy import SAFE_STDLIB_IMPORTS, ImportCheck, ImportPolicy, extract_imports
from .media import OutputDirectory
from .moondream import basic_moondream_tools, moondream_tools
from .python_interpreter import PythonInterpreterTool, python_interpreter
from .sandbox import (
    ExecutionFault,
    ExecutionMedia,
    ExecutionOk,
    ExecutionOutcome,
    InterpreterSession,
    build_harness,
    decode_outcome,
    describe_rejection,
    execute_code,
)
from .wikipedia import wikipedia_tools


def python_tools(
    allowed_imports: Optional[Iterable[str]] = None,
    output_dir: Optional[str] = None
) -> List[BaseTool]:
    """Return the Python interpreter tool set."""
    return [python_interpreter(allowed_imports=allowed_imports, output_dir=output_dir)]


def all_tools(
    allowed_imports: Optional[Iterable[str]] = None,
    output_dir: Optional[str] = None
) -> List[BaseTool]:
    """Return every tool, the interpreter first."""
    return [
        *python_tools(allowed_imports, output_dir),
        *wikipedia_tools(),
        *finance_tools(),
        *image_tools(output_dir=output_dir),
        *moondream_tools(),
    ]


def default_registry(
    allowed_imports: Optional[Iterable[str]] = None,
    output_dir: Optional[str] = None,
    registry: Optional[ToolRegistry] = None
) -> ToolRegistry:
    """Register every tool into ``registry`` (a new one when omitted)."""
    registry = registry if registry is not None else ToolRegistry()
    for tool in all_tools(allowed_imports, output_dir):
        registry.register_tool(tool)
    return registry


def all_descriptors(
    allowed_imports: Optional[Iterable[str]] = None,
    output_dir: Optional[str] = None
) -> List[ToolDescriptor]:
    """Descriptors for every tool, ready to hand to an agent."""
    return [tool.as_descriptor() for tool in all_tools(allowed_imports, output_dir)]


__all__ = [
    "BaseTool",
    "ToolResult",
    "ToolError",
    "ToolConfig",
    "ToolRegistry",
    "ToolStatus",
    "ToolDescriptor",
    "ToolInput",
    "ToolOutput",
    "Safety",
    "MediaKind",
    "MediaReference",
    "get_tool_registry",
    "register_tool",
    "get_tool",
    "SAFE_STDLIB_IMPORTS",
    "ImportCheck",
    "ImportPolicy",
    "extract_imports",
    "OutputDirectory",
    "ExecutionOk",
    "ExecutionMedia",
    "ExecutionFault",
    "ExecutionOutcome",
    "InterpreterSession",
    "build_harness",
    "execute_code",
    "decode_outcome",
    "describe_rejection",
    "PythonInterpreterTool",
    "python_interpreter",
    "python_tools",
    "wikipedia_tools",
    "finance_tools",
    "image_tools",
    "moondream_tools",
    "basic_moondream_tools",
    "all_tools",
    "default_registry",
    "all_descriptors",
]
