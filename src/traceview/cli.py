from __future__ import annotations

import argparse
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from traceview import __version__
from traceview.config import Config, get_config, load_config, set_config
from traceview.errors import (
    ErrorCode,
    TraceError,
    handle_exception,
    is_verbose,
    make_error,
    set_verbose,
)
from traceview.summary import TraceListItem, mk_duration_str, summarize_traces
from traceview.trace.build_trace import TraceTree, build_tree
from traceview.trace.trace_model import load_trace, load_traces, normalize_id
from traceview.validation import validate_trace_file
from traceview.visibility import VisibilityState
from traceview.zoom import ZoomMapper

OUTPUT_FORMATS = ("text", "json")


def _check_input(path: Path, config: Config) -> bool:
    """Validate an input file when schema validation is enabled."""
    if not path.exists():
        raise FileNotFoundError(str(path))
    if not config.schema_validation:
        return True
    result = validate_trace_file(path)
    if not result.valid:
        print(result.summary(), file=sys.stderr)
        make_error(ErrorCode.E201, str(path)).print()
    return result.valid


def _format_item(item: TraceListItem) -> str:
    parts = [
        item.trace_id,
        item.start_ts,
        f"{item.duration_str or '-':>10}",
        f"{item.span_count:>4} spans",
    ]
    if item.width is not None:
        parts.append(f"{'#' * max(1, item.width // 5):<20}")
    if item.service_percentage is not None:
        parts.append(f"{item.service_percentage}%")
    if item.info_class:
        parts.append(f"[{item.info_class}]")
    return "  ".join(parts)


def _cmd_summarize(args: argparse.Namespace) -> int:
    config = get_config()
    traces_path = Path(args.traces)
    if not _check_input(traces_path, config):
        return 1

    traces = load_traces(traces_path)
    skipped: list[str] = []

    def on_error(trace_id: Optional[str], exc: Exception) -> None:
        skipped.append(trace_id or "<empty>")
        message = exc.to_error().message if isinstance(exc, TraceError) else str(exc)
        print(f"⚠️  Skipped trace {skipped[-1]}: {message}", file=sys.stderr)

    service_name = args.service or config.service_name
    if config.is_parallel():
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            items = summarize_traces(
                traces, service_name, config.use_utc, on_error=on_error, executor=executor
            )
    else:
        items = summarize_traces(traces, service_name, config.use_utc, on_error=on_error)

    if args.format == "json":
        print(json.dumps([item.to_dict() for item in items], indent=2, ensure_ascii=False))
    else:
        for item in items:
            print(_format_item(item))
        print(f"\n{len(items)} trace(s), {len(skipped)} skipped")
    return 0


def _depth(tree: TraceTree, span_id: str) -> int:
    node = tree.nodes[span_id]
    depth = 0
    while node.parent is not None and not node.parent.is_synthetic:
        depth += 1
        node = node.parent
    return depth


def _render_tree(tree: TraceTree, state: VisibilityState) -> list[str]:
    lines: list[str] = []
    for node in tree.traverse():
        rec = state.record(node.id)
        if not rec.visible:
            continue
        if not rec.child_ids:
            marker = "   "
        else:
            marker = "[-]" if rec.expanded else "[+]"
        span = node.span
        services = ",".join(span.service_names()) or "unknown"
        label = f"{services}: {span.name}" if span.name else services
        duration = mk_duration_str(span.duration)
        lines.append(
            f"{'  ' * _depth(tree, node.id)}{marker} {node.id} {label}"
            + (f" {duration}" if duration else "")
        )
    return lines


def _cmd_tree(args: argparse.Namespace) -> int:
    config = get_config()
    trace_path = Path(args.trace)
    if not _check_input(trace_path, config):
        return 1

    tree = build_tree(load_trace(trace_path))
    state = VisibilityState(tree)
    service_name = args.service or config.service_name
    if service_name:
        state.show(tree.spans_by_service.get(service_name.lower(), []))
    if args.expand_all:
        state.expand_all()
    for span_id in args.expand or []:
        state.show([normalize_id(span_id)])

    if tree.headless:
        print("(headless trace: root span missing)")
    for line in _render_tree(tree, state):
        print(line)
    return 0


def _cmd_zoom(args: argparse.Namespace) -> int:
    config = get_config()
    trace_path = Path(args.trace)
    if not _check_input(trace_path, config):
        return 1

    tree = build_tree(load_trace(trace_path))
    mapper = ZoomMapper.from_tree(tree)
    rows = mapper.zoom(args.min, args.max)

    print("markers: " + " ".join(mapper.markers()))
    for row in rows:
        flag = "*" if row.highlighted else " "
        print(f"{flag} {row.id}  left={row.offset_percent:6.2f}%  width={row.width_percent:6.2f}%")
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    result = validate_trace_file(args.trace)
    print(result.summary())
    return 0 if result.valid else 1


def _cmd_show_config(args: argparse.Namespace) -> int:
    print(json.dumps(get_config().to_dict(), indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    p = argparse.ArgumentParser(
        prog="traceview",
        description="Span trees, timeline zoom and ranked summaries for Zipkin traces",
    )

    # Global flags
    p.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show full tracebacks on errors",
    )
    p.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    p.add_argument("--config", help="Path to a YAML config file")
    p.add_argument("--env-file", help="Path to a .env file")
    p.add_argument("--log-level", help="Logging level (default: WARNING)")
    p.add_argument("--utc", action="store_true", default=None, help="Show times in UTC")
    p.add_argument(
        "--no-validate",
        dest="schema_validation",
        action="store_false",
        default=None,
        help="Skip schema validation of input files",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    p_sum = sub.add_parser("summarize", help="Rank traces by duration")
    p_sum.add_argument("--traces", required=True, help="JSON/JSONL file with one or more traces")
    p_sum.add_argument("--service", help="Show the share of each trace spent in this service")
    p_sum.add_argument("--format", choices=OUTPUT_FORMATS, default="text")
    p_sum.set_defaults(func=_cmd_summarize)

    p_tree = sub.add_parser("tree", help="Print the span tree of one trace")
    p_tree.add_argument("--trace", required=True, help="JSON/JSONL file with one trace")
    p_tree.add_argument("--expand-all", action="store_true", help="Expand every span")
    p_tree.add_argument(
        "--expand", action="append", metavar="SPAN_ID", help="Expand a span (repeatable)"
    )
    p_tree.add_argument("--service", help="Expand the spans of this service")
    p_tree.set_defaults(func=_cmd_tree)

    p_zoom = sub.add_parser("zoom", help="Clip a trace timeline to a time window")
    p_zoom.add_argument("--trace", required=True, help="JSON/JSONL file with one trace")
    p_zoom.add_argument("--min", type=float, required=True, help="Window start, μs from trace start")
    p_zoom.add_argument("--max", type=float, required=True, help="Window end, μs from trace start")
    p_zoom.set_defaults(func=_cmd_zoom)

    p_val = sub.add_parser("validate", help="Validate a trace file against the span schema")
    p_val.add_argument("--trace", required=True, help="JSON/JSONL trace file")
    p_val.set_defaults(func=_cmd_validate)

    p_cfg = sub.add_parser("show-config", help="Print the resolved configuration")
    p_cfg.set_defaults(func=_cmd_show_config)

    args = p.parse_args(argv)
    set_verbose(args.verbose)

    try:
        config = load_config(
            env_file=args.env_file,
            config_file=args.config,
            cli_overrides={
                "use_utc": args.utc,
                "log_level": args.log_level,
                "schema_validation": args.schema_validation,
            },
        )
        set_config(config)
        logging.basicConfig(
            level=getattr(logging, config.log_level, logging.WARNING),
            format="%(levelname)s %(name)s: %(message)s",
        )
        rc = args.func(args)
        raise SystemExit(rc)
    except SystemExit:
        raise
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted by user", file=sys.stderr)
        raise SystemExit(130)
    except FileNotFoundError as e:
        handle_exception(e, ErrorCode.E301, str(e))
        raise SystemExit(1)
    except OSError as e:
        handle_exception(e, ErrorCode.E302, str(e))
        raise SystemExit(1)
    except TraceError as e:
        handle_exception(e, e.code)
        raise SystemExit(1)
    except Exception as e:
        if is_verbose():
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {e}", file=sys.stderr)
            print("Run with --verbose for full traceback", file=sys.stderr)
        raise SystemExit(1)
