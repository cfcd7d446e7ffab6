"""
Logging configuration for code-agent-tools with structured audit logging support.
"""

import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from loguru import logger

from .config import settings


# Audit log levels
AuditLevel = Literal["info", "warning", "error", "critical"]

# Audit event types
AuditEventType = Literal["tool_execution", "policy_violation", "file_operation"]


class AuditLogger:
    """
    Structured audit logger for security-relevant tool events.

    Records import policy rejections and executions of unsafe tools as
    JSON lines, one object per event.
    """

    def __init__(self):
        """Initialize audit logger. Records reach a sink once ``add_sink`` is called."""
        self.audit_logger = logger.bind(audit=True)

    def add_sink(self, sink: Any, **options) -> int:
        """
        Attach a sink that receives audit records as JSON lines.

        Args:
            sink: Any loguru sink (path, stream or callable)
            **options: Extra ``logger.add`` options such as rotation

        Returns:
            The loguru handler id
        """
        return logger.add(
            sink,
            level="INFO",
            format=self._json_formatter,
            filter=lambda record: record["extra"].get("audit", False),
            **options
        )

    def _json_formatter(self, record: Dict[str, Any]) -> str:
        """
        Format log record as a single JSON line.

        Args:
            record: Loguru record dictionary

        Returns:
            JSON-formatted log string
        """
        audit_data = record["extra"].get("audit_data", {})

        log_entry = {
            "@timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "logger": "code-agent-tools-audit",
            "message": record["message"],
            "environment": settings.environment,
            **audit_data
        }

        # Loguru treats the returned string as a format template
        line = json.dumps(log_entry, ensure_ascii=False, default=str)
        return line.replace("{", "{{").replace("}", "}}") + "\n"

    def log_event(
        self,
        event_type: AuditEventType,
        action: str,
        tool_name: str,
        level: AuditLevel = "info",
        outcome: Literal["success", "failure", "error"] = "success",
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> None:
        """
        Log a structured audit event.

        Args:
            event_type: Type of audit event
            action: Specific action performed
            tool_name: Tool the event belongs to
            level: Log level for the event
            outcome: Result of the action
            error_message: Error message if action failed
            metadata: Additional metadata
            **kwargs: Additional fields
        """
        audit_data = {
            "event_type": event_type,
            "action": action,
            "tool_name": tool_name,
            "outcome": outcome,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        if error_message:
            audit_data["error_message"] = error_message
        if metadata:
            audit_data["metadata"] = metadata

        audit_data.update(kwargs)

        message = f"{event_type.upper()}: {action} [{tool_name}]"
        if outcome != "success":
            message += f" - {outcome.upper()}"

        self.audit_logger.bind(audit_data=audit_data).log(level.upper(), message)

    def log_policy_violation(self, tool_name: str, unauthorized: List[str]) -> None:
        """Log an import policy rejection."""
        self.log_event(
            event_type="policy_violation",
            action="import_rejected",
            tool_name=tool_name,
            level="warning",
            outcome="failure",
            metadata={"unauthorized_imports": unauthorized},
        )

    def log_tool_execution(
        self,
        tool_name: str,
        status: str,
        execution_time: float,
        error_message: Optional[str] = None,
        **kwargs
    ) -> None:
        """Log the execution of an unsafe tool."""
        self.log_event(
            event_type="tool_execution",
            action="execute",
            tool_name=tool_name,
            outcome="success" if status == "success" else "error",
            error_message=error_message,
            metadata={"execution_time": round(execution_time, 4)},
            **kwargs
        )


def configure_logging():
    """Configure logging with Loguru.

    Replaces every installed handler, so applications call this once at
    startup; importing the package leaves loguru untouched.
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
               "<level>{message}</level>",
        colorize=True,
        filter=lambda record: not record["extra"].get("audit", False)
    )

    log_path = settings.log_path
    if log_path is None:
        return

    log_path.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(log_path / "application_{time:YYYY-MM-DD}.log"),
        level="INFO",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
        rotation="1 day",
        retention="30 days",
        compression="gzip",
        filter=lambda record: not record["extra"].get("audit", False)
    )

    logger.add(
        str(log_path / "errors_{time:YYYY-MM-DD}.log"),
        level="ERROR",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}\n{exception}",
        rotation="1 day",
        retention="90 days",
        compression="gzip",
        filter=lambda record: not record["extra"].get("audit", False)
    )

    audit_log_dir = log_path / "audit"
    audit_log_dir.mkdir(parents=True, exist_ok=True)
    audit_logger.add_sink(
        str(audit_log_dir / "audit_{time:YYYY-MM-DD}.jsonl"),
        rotation="1 day",
        retention="90 days",
        compression="gzip",
    )


# Create global audit logger instance
audit_logger = AuditLogger()

# Export configured loggers
__all__ = ["logger", "audit_logger", "AuditLogger", "configure_logging"]
