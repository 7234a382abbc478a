"""Schema validation for Zipkin v2 span input."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

SPAN_SCHEMA = "zipkin2.span.schema.json"


@dataclass
class ValidationError:
    """A single validation error."""

    path: str
    message: str
    line_number: int | None = None  # For JSONL files


@dataclass
class ValidationResult:
    """Result of validating a file."""

    valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    file_path: str = ""
    span_count: int = 0

    def summary(self) -> str:
        """Return a human-readable summary."""
        if self.valid:
            return f"✓ {self.file_path}: Valid ({self.span_count} spans)"
        lines = [f"✗ {self.file_path}: {len(self.errors)} error(s)"]
        for err in self.errors:
            if err.line_number is not None:
                lines.append(f"  Line {err.line_number}: {err.path} - {err.message}")
            else:
                lines.append(f"  {err.path} - {err.message}")
        return "\n".join(lines)


def _get_schema_dir() -> Path:
    """Get the directory containing schemas."""
    return Path(__file__).parent.parent / "schemas"


def _load_schema(schema_name: str) -> dict[str, Any]:
    """Load a JSON schema by name."""
    schema_path = _get_schema_dir() / schema_name
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_path}")
    return json.loads(schema_path.read_text(encoding="utf-8"))


def _format_path(path: list[Any]) -> str:
    """Format a jsonschema path as a dotted string."""
    if not path:
        return "$"
    parts = ["$"]
    for p in path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(f".{p}")
    return "".join(parts)


def _span_validator() -> jsonschema.Draft202012Validator:
    return jsonschema.Draft202012Validator(_load_schema(SPAN_SCHEMA))


def _check_span(
    validator: jsonschema.Draft202012Validator,
    span: Any,
    result: ValidationResult,
    prefix: list[Any],
    line_number: int | None = None,
) -> None:
    result.span_count += 1
    for err in validator.iter_errors(span):
        result.valid = False
        result.errors.append(ValidationError(
            path=_format_path(prefix + list(err.absolute_path)),
            message=err.message,
            line_number=line_number,
        ))


def validate_span_dict(span: dict[str, Any]) -> ValidationResult:
    """Validate a single span dictionary against the span schema.

    Useful for programmatic validation without file I/O.

    Args:
        span: Span dictionary to validate.

    Returns:
        ValidationResult with any errors found.
    """
    result = ValidationResult(valid=True, file_path="<dict>")
    _check_span(_span_validator(), span, result, [])
    return result


def validate_trace_data(data: Any, file_path: str = "<data>") -> ValidationResult:
    """Validate decoded JSON holding one trace, many traces or a single span."""
    result = ValidationResult(valid=True, file_path=file_path)
    validator = _span_validator()

    if isinstance(data, dict):
        _check_span(validator, data, result, [])
    elif isinstance(data, list):
        for i, item in enumerate(data):
            if isinstance(item, list):
                for j, span in enumerate(item):
                    _check_span(validator, span, result, [i, j])
            else:
                _check_span(validator, item, result, [i])
    else:
        result.valid = False
        result.errors.append(ValidationError(
            path="$",
            message=f"Expected a span object or a list, got {type(data).__name__}",
        ))
    return result


def validate_trace_file(trace_path: str | Path) -> ValidationResult:
    """Validate a JSON or JSONL trace file against the span schema.

    In JSONL files each line is validated as a separate span.

    Args:
        trace_path: Path to the trace file.

    Returns:
        ValidationResult with any errors found.
    """
    trace_path = Path(trace_path)
    result = ValidationResult(valid=True, file_path=str(trace_path))

    if not trace_path.exists():
        result.valid = False
        result.errors.append(ValidationError(
            path="$",
            message=f"File not found: {trace_path}"
        ))
        return result

    try:
        content = trace_path.read_text(encoding="utf-8")
    except OSError as e:
        result.valid = False
        result.errors.append(ValidationError(
            path="$",
            message=f"Cannot read file: {e}"
        ))
        return result

    if trace_path.suffix != ".jsonl":
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            result.valid = False
            result.errors.append(ValidationError(path="$", message=f"Invalid JSON: {e}"))
            return result
        return validate_trace_data(data, file_path=str(trace_path))

    validator = _span_validator()
    lines = content.strip().split("\n") if content.strip() else []
    if not lines:
        result.valid = False
        result.errors.append(ValidationError(
            path="$",
            message="Trace file is empty",
            line_number=0
        ))
        return result

    for line_num, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue

        try:
            span_data = json.loads(line)
        except json.JSONDecodeError as e:
            result.valid = False
            result.errors.append(ValidationError(
                path="$",
                message=f"Invalid JSON: {e}",
                line_number=line_num
            ))
            continue

        _check_span(validator, span_data, result, [], line_number=line_num)

    return result
