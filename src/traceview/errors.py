"""traceview error code registry.

Provides structured error codes with helpful messages and next steps.
Each error has:
- Code: TV-EXXX format
- Message: Human-readable description
- Next step: Actionable command or instruction

Exceptions raised by the library derive from ``TraceError`` and carry the
``ErrorCode`` they map to, so the CLI can print them uniformly.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """traceview error codes."""

    # Configuration errors (E001-E099)
    E001 = "E001"  # Config file not found
    E002 = "E002"  # Invalid config file
    E007 = "E007"  # Invalid environment value

    # Trace errors (E100-E199)
    E100 = "E100"  # Trace is missing a timestamp
    E101 = "E101"  # Trace has no spans
    E102 = "E102"  # Invalid zoom range
    E103 = "E103"  # Zoom already active
    E104 = "E104"  # Unknown span id

    # Validation errors (E200-E299)
    E200 = "E200"  # Span data invalid
    E201 = "E201"  # Schema validation failed

    # File/IO errors (E300-E399)
    E301 = "E301"  # Trace file not found
    E302 = "E302"  # Cannot read file


@dataclass
class TraceViewError:
    """Structured error with code, message, and next step."""

    code: ErrorCode
    message: str
    next_step: str
    details: Optional[str] = None

    def __str__(self) -> str:
        lines = [
            f"TV-{self.code.value}: {self.message}",
        ]
        if self.details:
            lines.append(f"  Details: {self.details}")
        lines.append(f"  Next step: {self.next_step}")
        return "\n".join(lines)

    def print(self, file=None) -> None:
        """Print the error to stderr (or specified file)."""
        print(str(self), file=file or sys.stderr)


# Pre-defined error templates
ERROR_TEMPLATES: dict[ErrorCode, tuple[str, str]] = {
    # (message_template, next_step)
    ErrorCode.E001: (
        "Config file not found: {details}",
        "Check the --config path or remove it to use defaults"
    ),
    ErrorCode.E002: (
        "Config file is invalid: {details}",
        "Check YAML syntax; top level must be a mapping"
    ),
    ErrorCode.E007: (
        "Invalid environment value: {details}",
        "Run 'traceview show-config' to inspect resolved settings"
    ),
    ErrorCode.E100: (
        "Trace is missing a timestamp: {details}",
        "At least one span needs a timestamp; exclude this trace from display"
    ),
    ErrorCode.E101: (
        "Trace has no spans",
        "Check the trace file contains at least one span"
    ),
    ErrorCode.E102: (
        "Invalid zoom range: {details}",
        "The zoom start must be lower than the zoom end"
    ),
    ErrorCode.E103: (
        "Zoom already active",
        "Zoom out before selecting a new range"
    ),
    ErrorCode.E104: (
        "Unknown span id: {details}",
        "Use an id present in the trace tree"
    ),
    ErrorCode.E200: (
        "Span data is invalid: {details}",
        "Run 'traceview validate --trace <file>' to see details"
    ),
    ErrorCode.E201: (
        "Schema validation failed",
        "Run 'traceview validate --trace <file>' to see details"
    ),
    ErrorCode.E301: (
        "Trace file not found: {details}",
        "Check the --trace/--traces path"
    ),
    ErrorCode.E302: (
        "Cannot read file: {details}",
        "Check file permissions and path"
    ),
}


def make_error(code: ErrorCode, details: Optional[str] = None) -> TraceViewError:
    """Create a TraceViewError from a code with optional details.

    Args:
        code: The error code
        details: Optional details to include in the message

    Returns:
        TraceViewError instance ready to print
    """
    template = ERROR_TEMPLATES.get(code, ("Unknown error", "Run with --verbose"))
    message_template, next_step = template

    # Format message with details if present
    if details and "{details}" in message_template:
        message = message_template.format(details=details)
    elif details:
        message = f"{message_template}: {details}"
    else:
        message = message_template.replace(": {details}", "")

    return TraceViewError(
        code=code,
        message=message,
        next_step=next_step,
        details=details if "{details}" not in message_template else None,
    )


class TraceError(Exception):
    """Base class for errors raised by traceview operations."""

    code: ErrorCode = ErrorCode.E200

    def __init__(self, details: Optional[str] = None) -> None:
        self.details = details
        super().__init__(str(self.to_error()))

    def to_error(self) -> TraceViewError:
        return make_error(self.code, self.details)


class MissingTimestampError(TraceError):
    """No span in the trace carries a usable timestamp."""

    code = ErrorCode.E100

    def __init__(self, trace_id: Optional[str] = None) -> None:
        self.trace_id = trace_id
        super().__init__(f"trace {trace_id}" if trace_id else None)


class EmptyTraceError(TraceError):
    code = ErrorCode.E101


class InvalidZoomRangeError(TraceError):
    code = ErrorCode.E102


class ZoomActiveError(TraceError):
    code = ErrorCode.E103


class UnknownSpanError(TraceError, KeyError):
    """A visibility operation referenced an id that is not in the tree."""

    code = ErrorCode.E104

    def __str__(self) -> str:
        return str(self.to_error())


class SpanDataError(TraceError):
    code = ErrorCode.E200


class ConfigError(TraceError):
    """Raised when configuration cannot be loaded."""

    def __init__(self, code: ErrorCode, details: Optional[str] = None) -> None:
        self.code = code
        super().__init__(details)


# Verbose mode flag (set by CLI)
_verbose_mode: bool = False


def set_verbose(verbose: bool) -> None:
    """Set verbose mode for error output."""
    global _verbose_mode
    _verbose_mode = verbose


def is_verbose() -> bool:
    """Check if verbose mode is enabled."""
    return _verbose_mode


def handle_exception(exc: Exception, code: ErrorCode, details: Optional[str] = None) -> None:
    """Handle an exception with proper error formatting.

    In verbose mode, prints the full traceback.
    Otherwise, prints a formatted error message.

    Args:
        exc: The exception that occurred
        code: The error code to use
        details: Optional additional details
    """
    import traceback

    if isinstance(exc, TraceError) and details is None:
        err = exc.to_error()
    else:
        err = make_error(code, details or str(exc))
    err.print()

    if _verbose_mode:
        print("\n--- Full Traceback ---", file=sys.stderr)
        traceback.print_exc()
