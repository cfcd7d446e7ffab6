"""
Python interpreter tool for agent-authored code.
Runs snippets in-process behind an import allow-list and returns text,
typed media references, or error text.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from .base import BaseTool, MediaReference, Safety, ToolConfig, ToolError, ToolInput, ToolOutput, ToolResult, ToolStatus
from .import_policy import ImportPolicy
from .media import OutputDirectory
from .sandbox import (
    ExecutionFault,
    ExecutionOutcome,
    InterpreterSession,
    decode_outcome,
    describe_rejection,
    execute_code,
)
from ..core.config import settings
from ..core.logging import audit_logger, logger


DESCRIPTION_TEMPLATE = """\
Execute Python code and return the result.
IMPORTANT: Set a 'result' variable with the value to return. Do NOT use print().
Example: result = 2 + 2  # returns "4"

For matplotlib plots or image/video/audio generation:
- Use OUTPUT_DIR variable to save files (automatically set to '{output_dir}')
- Set 'result' to a tuple: ("image", path) or ("video", path) or ("audio", path)
- Example:
  import matplotlib.pyplot as plt
  import os
  plt.plot([1,2,3])
  path = os.path.join(OUTPUT_DIR, 'plot.png')
  plt.savefig(path)
  result = ("image", path)  # This will display the image
{imports_note}"""


class PythonInterpreterTool(BaseTool):
    """Python interpreter tool.

    Each call gets a fresh namespace unless ``persistent_session`` is set, in
    which case bindings persist across calls on this instance only.
    """

    inputs = {
        "code": ToolInput(
            type="string",
            description="Python code to execute. Must set 'result' variable (not print). "
                        "Example: result = sum([1,2,3])"
        )
    }
    output_type = "string"
    safety = Safety.UNSAFE

    def __init__(
        self,
        config: Optional[ToolConfig] = None,
        allowed_imports: Optional[Iterable[str]] = None,
        output_dir: Optional[str] = None,
        persistent_session: bool = False,
        max_output_length: Optional[int] = None
    ):
        """Initialize Python interpreter tool.

        Args:
            config: Tool configuration (uses defaults if None)
            allowed_imports: Allowed module prefixes; None allows every import
            output_dir: Managed output directory (defaults to settings.output_dir)
            persistent_session: Keep bindings between calls
            max_output_length: Truncate text results beyond this many characters
        """
        self.policy = ImportPolicy(allowed_imports)
        self.output_dir = OutputDirectory(output_dir)
        self.output_dir.ensure()
        self.session = InterpreterSession() if persistent_session else None
        self.max_output_length = max_output_length or settings.max_output_length

        if config is None:
            config = ToolConfig(
                name="python_interpreter",
                description=self._build_description(),
                timeout=settings.interpreter_timeout,
            )

        super().__init__(config)

        logger.info(
            f"Initialized Python interpreter tool (output dir: {self.output_dir}, "
            f"allowed imports: {'all' if not self.policy.is_restricted else len(self.policy.allowed_imports)})"
        )

    def _build_description(self) -> str:
        if self.policy.is_restricted:
            imports_note = f"\nAllowed imports: {', '.join(self.policy.allowed_imports)}\n"
        else:
            imports_note = ""
        return DESCRIPTION_TEMPLATE.format(output_dir=self.output_dir, imports_note=imports_note)

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        """Check imports, run the code and decode the outcome.

        Raises:
            ToolError: For rejected imports and faults raised by the code
        """
        code = validated_input["code"]
        logger.info(f"[{self.name}] Executing Python code ({len(code)} chars)")

        check = self.policy.check(code)
        if not check.allowed:
            message = describe_rejection(check)
            logger.warning(f"[{self.name}] {message}")
            audit_logger.log_policy_violation(self.name, check.unauthorized)
            raise ToolError(message, self.name, {"unauthorized_imports": check.unauthorized})

        outcome = await self._run_blocking(self.execute, code)

        if outcome.output:
            logger.debug(f"[{self.name}] Captured output:\n{outcome.output}")

        if isinstance(outcome, ExecutionFault):
            logger.error(f"[{self.name}] Python error: {outcome.diagnostic.splitlines()[0]}")
            raise ToolError(
                decode_outcome(outcome),
                self.name,
                {"diagnostic": outcome.diagnostic, "output": outcome.output}
            )

        result = decode_outcome(outcome, str(self.output_dir))
        if isinstance(result, MediaReference):
            logger.info(f"[{self.name}] Execution successful with {result.kind.value}: {result.path}")
            return result

        logger.info(f"[{self.name}] Execution successful")
        return self._truncate(result)

    def execute(self, code: str, bindings: Optional[Mapping[str, Any]] = None) -> ExecutionOutcome:
        """Run already-checked code in this tool's namespace policy."""
        output_dir = str(self.output_dir.ensure())
        if self.session is None:
            return execute_code(code, output_dir, bindings)

        with self.session.lock:
            return execute_code(code, output_dir, bindings, namespace=self.session.namespace)

    def _truncate(self, text: str) -> str:
        if len(text) > self.max_output_length:
            return text[:self.max_output_length] + "... (output truncated)"
        return text

    def clear_context(self) -> None:
        """Clear the persistent execution context."""
        if self.session is not None:
            self.session.clear()
            logger.debug("Cleared Python interpreter execution context")

    def get_context_variables(self) -> Dict[str, str]:
        """Get current context variables with their types."""
        if self.session is None:
            return {}
        return self.session.variables()

    async def test_connection(self) -> ToolResult:
        """Test Python interpreter functionality."""
        result = await self.run({"code": "result = 2 + 2"})

        if result.status == ToolStatus.SUCCESS and result.content == "4":
            return ToolResult(
                tool_name=self.name,
                status=ToolStatus.SUCCESS,
                content="Python interpreter test passed",
                metadata={"test": "basic_calculation"}
            )

        return ToolResult(
            tool_name=self.name,
            status=ToolStatus.ERROR,
            content="Python interpreter test failed",
            error=result.error or "Test calculation did not produce expected output",
            metadata={"test_result": result.content}
        )


def python_interpreter(
    allowed_imports: Optional[Iterable[str]] = None,
    output_dir: Optional[str] = None,
    **kwargs
) -> PythonInterpreterTool:
    """Build the python_interpreter tool."""
    return PythonInterpreterTool(allowed_imports=allowed_imports, output_dir=output_dir, **kwargs)
