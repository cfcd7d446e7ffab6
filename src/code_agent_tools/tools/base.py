"""
Base tool interface for code-agent-tools.
Provides the uniform tool descriptor, argument normalization, and
execution with error handling.
"""

import asyncio
import os
import threading
import time
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from ..core.logging import audit_logger, logger


# Blocking SDK calls and interpreter runs use this pool instead of the loop's
# default executor, so asyncio.run() does not wait on a timed-out worker.
_blocking_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="code-agent-tool")


class ToolStatus(Enum):
    """Tool execution status."""

    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class Safety(str, Enum):
    """Advisory safety tag; hosts may gate unsafe tools behind confirmation."""

    SAFE = "safe"
    UNSAFE = "unsafe"


class MediaKind(str, Enum):
    """Kinds of generated media a tool can return."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class MediaReference(BaseModel):
    """Typed reference to a generated media file."""

    model_config = ConfigDict(frozen=True)

    kind: MediaKind
    path: str

    def as_tuple(self) -> Tuple[str, str]:
        return (self.kind.value, self.path)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.path}"


ToolOutput = Union[str, MediaReference]


class ToolInput(BaseModel):
    """One documented tool parameter."""

    model_config = ConfigDict(frozen=True)

    type: str = "string"
    description: str
    default: Optional[str] = None


class ToolDescriptor(BaseModel):
    """Uniform record exposing one tool to the hosting agent.

    ``inputs`` keeps insertion order, which is the positional call order of
    ``function``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str
    inputs: Dict[str, ToolInput]
    output_type: Literal["string", "tuple"] = "string"
    safety: Safety = Safety.SAFE
    function: Callable[..., ToolOutput]


class ToolResult(BaseModel):
    """Result of tool execution."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    tool_name: str
    status: ToolStatus
    content: Any
    error: Optional[str] = None
    execution_time: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)


class ToolError(Exception):
    """Base exception for tool-related errors.

    The message is the exact observation text returned to the agent.
    """

    def __init__(self, message: str, tool_name: str = "", details: Optional[Dict] = None):
        super().__init__(message)
        self.tool_name = tool_name
        self.details = details or {}


class ToolConfig(BaseModel):
    """Configuration for a tool."""

    name: str
    description: str
    timeout: int = Field(default=30, gt=0)  # seconds
    max_retries: int = Field(default=0, ge=0)
    enabled: bool = True
    rate_limit: Optional[int] = None  # requests per minute
    custom_params: Dict[str, Any] = Field(default_factory=dict)


def normalize_text(value: Any) -> str:
    """Canonicalize one incoming argument into a ``str``."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, os.PathLike):
        return normalize_text(os.fspath(value))
    return str(value)


class BaseTool(ABC):
    """Base class for all tools.

    Provides unified interface for tool execution with error handling,
    timeout management, and result standardization. Subclasses declare
    ``inputs``, ``output_type`` and ``safety`` and implement ``_execute``.
    """

    inputs: ClassVar[Dict[str, ToolInput]] = {}
    output_type: ClassVar[Literal["string", "tuple"]] = "string"
    safety: ClassVar[Safety] = Safety.SAFE

    def __init__(self, config: ToolConfig):
        """Initialize the tool with configuration.

        Args:
            config: Tool configuration including name, description, and parameters
        """
        self.config = config
        self.id = f"{config.name}_{uuid.uuid4().hex[:8]}"
        self.created_at = datetime.now()
        self.execution_count = 0
        self.last_execution: Optional[datetime] = None
        self._rate_limiter: Dict[int, int] = {}
        self._lock = threading.Lock()

        logger.debug(f"Initialized tool {self.id}: {config.name}")

    @property
    def name(self) -> str:
        """Get tool name."""
        return self.config.name

    @property
    def description(self) -> str:
        """Get tool description."""
        return self.config.description

    @property
    def is_enabled(self) -> bool:
        """Check if tool is enabled."""
        return self.config.enabled

    def normalize_arguments(self, *args: Any, **kwargs: Any) -> Dict[str, str]:
        """Map an agent call onto the declared inputs, all values as ``str``.

        Accepts positional arguments in ``inputs`` order, keyword arguments,
        or a single mapping. Missing inputs take their default; an empty
        value also falls back to the default when one exists.

        Raises:
            ToolError: On missing, unknown or duplicated arguments
        """
        if len(args) == 1 and not kwargs and isinstance(args[0], Mapping):
            kwargs = {normalize_text(k): v for k, v in args[0].items()}
            args = ()

        names = list(self.inputs)
        if len(args) > len(names):
            raise ToolError(
                f"Error: {self.name} takes {len(names)} argument(s) "
                f"({', '.join(names)}) but {len(args)} were given",
                self.name
            )

        params: Dict[str, Any] = dict(zip(names, args))
        for key, value in kwargs.items():
            if key not in self.inputs:
                raise ToolError(
                    f"Error: unexpected argument '{key}' for {self.name}. "
                    f"Expected: {', '.join(names)}",
                    self.name
                )
            if key in params:
                raise ToolError(f"Error: got multiple values for argument '{key}'", self.name)
            params[key] = value

        normalized: Dict[str, str] = {}
        for name, spec in self.inputs.items():
            value = normalize_text(params.get(name))
            if not value and spec.default is not None:
                value = spec.default
            elif name not in params and spec.default is None:
                raise ToolError(f"Error: missing required argument '{name}' for {self.name}", self.name)
            normalized[name] = value

        return normalized

    async def run(self, tool_input: Union[str, Mapping[str, Any]]) -> ToolResult:
        """Execute the tool with given input.

        This is the main entry point for tool execution that provides:
        - Input validation
        - Rate limiting
        - Timeout handling
        - Error handling and logging
        - Result standardization

        Args:
            tool_input: Input for the tool (string for single-input tools, or a mapping)

        Returns:
            ToolResult: Standardized tool execution result
        """
        if not self.is_enabled:
            return ToolResult(
                tool_name=self.name,
                status=ToolStatus.ERROR,
                content=None,
                error="Error: Tool is disabled"
            )

        if not self._check_rate_limit():
            return ToolResult(
                tool_name=self.name,
                status=ToolStatus.ERROR,
                content=None,
                error="Error: Rate limit exceeded"
            )

        start_time = time.time()
        execution_id = str(uuid.uuid4())

        logger.debug(f"Starting execution {execution_id} for tool {self.name}")

        try:
            validated_input = await self._validate_input(tool_input)

            result = await self._execute_with_timeout(validated_input)

            execution_time = time.time() - start_time
            with self._lock:
                self.execution_count += 1
                self.last_execution = datetime.now()

            tool_result = ToolResult(
                tool_name=self.name,
                status=ToolStatus.SUCCESS,
                content=result,
                execution_time=execution_time,
                metadata={
                    "execution_id": execution_id,
                    "execution_count": self.execution_count,
                    "input_type": type(tool_input).__name__
                }
            )

            logger.debug(
                f"Tool {self.name} execution {execution_id} completed in {execution_time:.2f}s"
            )

        except TimeoutError:
            execution_time = time.time() - start_time
            error_msg = f"Error: Tool execution timed out after {self.config.timeout}s"

            logger.warning(f"Tool {self.name} execution {execution_id}: {error_msg}")

            tool_result = ToolResult(
                tool_name=self.name,
                status=ToolStatus.TIMEOUT,
                content=None,
                error=error_msg,
                execution_time=execution_time,
                metadata={"execution_id": execution_id}
            )

        except ToolError as e:
            execution_time = time.time() - start_time
            error_msg = str(e)

            logger.warning(f"Tool {self.name} execution {execution_id} failed: {error_msg}")

            tool_result = ToolResult(
                tool_name=self.name,
                status=ToolStatus.ERROR,
                content=None,
                error=error_msg,
                execution_time=execution_time,
                metadata={
                    "execution_id": execution_id,
                    "error_details": e.details
                }
            )

        except Exception as e:
            execution_time = time.time() - start_time
            error_msg = f"Error: Unexpected {type(e).__name__}: {e}"

            logger.exception(
                f"Tool {self.name} execution {execution_id} failed with unexpected error: {e}"
            )

            tool_result = ToolResult(
                tool_name=self.name,
                status=ToolStatus.ERROR,
                content=None,
                error=error_msg,
                execution_time=execution_time,
                metadata={
                    "execution_id": execution_id,
                    "error_type": type(e).__name__
                }
            )

        if self.safety == Safety.UNSAFE:
            audit_logger.log_tool_execution(
                tool_name=self.name,
                status=tool_result.status.value,
                execution_time=tool_result.execution_time,
                error_message=tool_result.error,
                execution_id=execution_id,
            )

        return tool_result

    def run_sync(self, tool_input: Union[str, Mapping[str, Any]]) -> ToolResult:
        """Run the tool to completion from synchronous code.

        Inside a running event loop the tool runs on a worker thread with its
        own loop, so the call blocks the caller but never the loop machinery.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.run(tool_input))

        with ThreadPoolExecutor(max_workers=1) as executor:
            return executor.submit(asyncio.run, self.run(tool_input)).result()

    def __call__(self, *args: Any, **kwargs: Any) -> ToolOutput:
        """Descriptor entry point: returns the tool output or an error string, never raises."""
        try:
            params = self.normalize_arguments(*args, **kwargs)
        except ToolError as e:
            logger.warning(f"[{self.name}] Rejected call: {e}")
            return str(e)

        return self.render_result(self.run_sync(params))

    @staticmethod
    def render_result(result: ToolResult) -> ToolOutput:
        """Turn a ToolResult into the value returned to the agent."""
        if result.status == ToolStatus.SUCCESS:
            return result.content
        return result.error or f"Error: {result.tool_name} failed"

    def as_descriptor(self) -> ToolDescriptor:
        """Build the uniform descriptor for this tool."""
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            inputs=dict(self.inputs),
            output_type=self.output_type,
            safety=self.safety,
            function=self,
        )

    @abstractmethod
    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        """Execute the tool's core functionality.

        This method should be implemented by each specific tool to perform
        its primary function. Input validation has already been performed.

        Args:
            validated_input: Normalized arguments keyed by input name

        Returns:
            Tool output (text or media reference)

        Raises:
            ToolError: For tool-specific errors
        """
        pass

    async def _validate_input(self, tool_input: Union[str, Mapping[str, Any]]) -> Dict[str, str]:
        """Validate and normalize tool input.

        Args:
            tool_input: Raw input for the tool

        Returns:
            Normalized arguments keyed by input name

        Raises:
            ToolError: If input validation fails
        """
        if tool_input is None:
            raise ToolError("Error: Tool input cannot be None", self.name)

        # A bare string is the first declared input
        return self.normalize_arguments(tool_input)

    async def _execute_with_timeout(self, validated_input: Dict[str, str]) -> ToolOutput:
        """Execute tool with timeout handling.

        Raises:
            TimeoutError: If execution exceeds timeout
        """
        try:
            return await asyncio.wait_for(
                self._execute(validated_input),
                timeout=self.config.timeout
            )
        except asyncio.TimeoutError:
            raise TimeoutError(f"Tool execution exceeded {self.config.timeout}s timeout")

    async def _run_blocking(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking call on the shared tool worker pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_blocking_executor, func, *args)

    def _check_rate_limit(self) -> bool:
        """Check if tool execution is within rate limits.

        Returns:
            True if execution is allowed, False if rate limited
        """
        if self.config.rate_limit is None:
            return True

        now = time.time()
        minute_key = int(now // 60)

        with self._lock:
            old_keys = [k for k in self._rate_limiter.keys() if k < minute_key - 5]
            for old_key in old_keys:
                del self._rate_limiter[old_key]

            current_count = self._rate_limiter.get(minute_key, 0)
            if current_count >= self.config.rate_limit:
                logger.warning(f"Rate limit exceeded for tool {self.name}: {current_count}/{self.config.rate_limit}")
                return False

            self._rate_limiter[minute_key] = current_count + 1
        return True

    def get_info(self) -> Dict[str, Any]:
        """Get tool information and statistics.

        Returns:
            Dictionary with tool information
        """
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.is_enabled,
            "safety": self.safety.value,
            "output_type": self.output_type,
            "inputs": {name: spec.model_dump() for name, spec in self.inputs.items()},
            "execution_count": self.execution_count,
            "last_execution": self.last_execution.isoformat() if self.last_execution else None,
            "created_at": self.created_at.isoformat(),
            "config": self.config.model_dump()
        }

    async def test_connection(self) -> ToolResult:
        """Test tool connectivity and basic functionality.

        Default implementation returns success. Override for tool-specific tests.
        """
        return ToolResult(
            tool_name=self.name,
            status=ToolStatus.SUCCESS,
            content="Tool connection test passed",
            metadata={"test": "basic_connectivity"}
        )

    async def initialize(self) -> bool:
        """Initialize tool resources."""
        logger.debug(f"Initializing tool {self.name}")
        return True

    async def cleanup(self) -> bool:
        """Clean up tool resources."""
        logger.debug(f"Cleaning up tool {self.name}")
        return True


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self):
        self._tools: Dict[str, BaseTool] = {}
        self._tool_configs: Dict[str, ToolConfig] = {}

    def register_tool(self, tool: BaseTool) -> None:
        """Register a tool in the registry.

        Args:
            tool: Tool instance to register
        """
        tool_name = tool.name
        if tool_name in self._tools:
            logger.warning(f"Overriding existing tool registration: {tool_name}")

        self._tools[tool_name] = tool
        self._tool_configs[tool_name] = tool.config

        logger.info(f"Registered tool: {tool_name}")

    def unregister_tool(self, tool_name: str) -> bool:
        """Unregister a tool from the registry.

        Returns:
            True if tool was found and unregistered, False otherwise
        """
        if tool_name in self._tools:
            del self._tools[tool_name]
            del self._tool_configs[tool_name]
            logger.info(f"Unregistered tool: {tool_name}")
            return True
        return False

    def get_tool(self, tool_name: str) -> Optional[BaseTool]:
        """Get a tool by name."""
        return self._tools.get(tool_name)

    def list_tools(self) -> List[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_enabled_tools(self) -> List[str]:
        """Get list of enabled tool names."""
        return [name for name, tool in self._tools.items() if tool.is_enabled]

    def get_tool_info(self, tool_name: str) -> Optional[Dict[str, Any]]:
        """Get information about a specific tool."""
        tool = self.get_tool(tool_name)
        return tool.get_info() if tool else None

    def descriptors(self, include_disabled: bool = False) -> List[ToolDescriptor]:
        """Get descriptors for the registered tools, in registration order."""
        return [
            tool.as_descriptor()
            for tool in self._tools.values()
            if include_disabled or tool.is_enabled
        ]

    async def initialize_all(self) -> Dict[str, bool]:
        """Initialize all registered tools.

        Returns:
            Dictionary mapping tool names to initialization success status
        """
        results = {}
        for tool_name, tool in self._tools.items():
            try:
                results[tool_name] = await tool.initialize()
            except Exception as e:
                logger.error(f"Failed to initialize tool {tool_name}: {e}")
                results[tool_name] = False

        return results

    async def cleanup_all(self) -> Dict[str, bool]:
        """Clean up all registered tools.

        Returns:
            Dictionary mapping tool names to cleanup success status
        """
        results = {}
        for tool_name, tool in self._tools.items():
            try:
                results[tool_name] = await tool.cleanup()
            except Exception as e:
                logger.error(f"Failed to cleanup tool {tool_name}: {e}")
                results[tool_name] = False

        return results


# Global tool registry instance
_global_registry = ToolRegistry()


def get_tool_registry() -> ToolRegistry:
    """Get the global tool registry instance."""
    return _global_registry


def register_tool(tool: BaseTool) -> None:
    """Register a tool in the global registry."""
    _global_registry.register_tool(tool)


def get_tool(tool_name: str) -> Optional[BaseTool]:
    """Get a tool from the global registry."""
    return _global_registry.get_tool(tool_name)
