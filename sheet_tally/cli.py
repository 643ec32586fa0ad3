from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from sheet_tally import __version__ as TOOL_VERSION
from sheet_tally.compiler import CompileResult, compile_documents, default_output_name
from sheet_tally.contracts import build_contract, build_run_summary
from sheet_tally.errors import EmptyResultError, SheetTallyError
from sheet_tally.filters import token_label
from sheet_tally.metrics import SCORE_FIELD, rows_frame
from sheet_tally.normalize import format_percent, preview_date
from sheet_tally.session import IngestResult, WordFilterSession
from sheet_tally.word_filter import counts_frame

SUPPORTED_FORMATS = {".xlsx", ".xls"}

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_EMPTY_RESULT = 5
EXIT_PARTIAL = 6

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class SheetTallyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.ERROR, format=LOG_FORMAT)


def read_inputs(paths: list[str]) -> list[tuple[str, bytes]]:
    documents = []
    for raw_path in paths:
        path = Path(raw_path)
        if path.suffix.lower() not in SUPPORTED_FORMATS:
            raise CliError(
                f"Unsupported file type '{path.suffix or '[missing extension]'}' for {path.name}. "
                "Please select Excel files (.xlsx or .xls) only.",
                EXIT_COMMAND_ERROR,
            )
        if not path.exists():
            raise CliError(f"File not found: {path}", EXIT_COMMAND_ERROR)
        documents.append((path.name, path.read_bytes()))
    return documents


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, EmptyResultError):
        return EXIT_EMPTY_RESULT
    if isinstance(exc, (SheetTallyError, ImportError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def ingest_exit_code(result: IngestResult) -> int:
    if not result.documents:
        return EXIT_PARSE_FAILED
    if result.failures:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


# ══════════════════════════════════════════════════════════════════════════════
# RENDERING
# ══════════════════════════════════════════════════════════════════════════════

def render_failures(failures) -> list[str]:
    return [f"  - {f.name}: {f.message}" for f in failures]


def render_tokens_text(session: WordFilterSession) -> str:
    lines = ["sheet-tally tokens", f"Tokens: {len(session.inventory)}"]
    for token in session.inventory:
        mark = "x" if session.filter_state.is_included(token) else " "
        lines.append(f"  [{mark}] {token_label(token)}")
    return "\n".join(lines) + "\n"


def render_counts_text(session: WordFilterSession) -> str:
    lines = ["sheet-tally counts"]
    for doc_id, counts in session.counts().items():
        doc = session.documents[doc_id]
        lines.append("")
        lines.append(f"File: {doc.name}")
        lines.append(f"Company: {doc.company} | Station: {doc.station}")
        if counts:
            lines.append(counts_frame(counts).to_string(index=False))
        else:
            lines.append("(no dated columns)")
    return "\n".join(lines) + "\n"


def render_compile_preview(result: CompileResult) -> str:
    frame = rows_frame(result.rows).astype(object)
    frame["Date"] = frame["Date"].map(preview_date)
    frame[SCORE_FIELD] = frame[SCORE_FIELD].map(format_percent)
    frame = frame.where(frame.notna(), "-")
    lines = ["sheet-tally compile", result.summary, frame.to_string(index=False)]
    return "\n".join(lines) + "\n"


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def apply_filter_flags(session: WordFilterSession, args: argparse.Namespace) -> None:
    search = args.search or ""
    if args.include_all:
        session.set_visible(search, True)
    if args.exclude_all:
        session.set_visible(search, False)
    if args.include:
        session.set_many(args.include, True)
    if args.exclude:
        session.set_many(args.exclude, False)


def ingest(args: argparse.Namespace) -> tuple[WordFilterSession, IngestResult]:
    session = WordFilterSession(max_workers=args.workers)
    result = session.add_documents(read_inputs(args.inputs))
    if result.failures:
        emit_human(result.summary, quiet=args.quiet)
    return session, result


def run_tokens(args: argparse.Namespace) -> int:
    try:
        session, result = ingest(args)
        if args.json:
            payload = {
                "contract": build_contract("word_filter.tokens"),
                "version": TOOL_VERSION,
                "tokens": [
                    {
                        "token": token,
                        "label": token_label(token),
                        "included": session.filter_state.is_included(token),
                    }
                    for token in session.inventory
                ],
                "run_summary": build_run_summary(
                    command="tokens",
                    inputs=args.inputs,
                    documents_ok=len(result.documents),
                    failures=[f.as_dict() for f in result.failures],
                ),
            }
            maybe_emit_json_stdout(payload, True)
        else:
            print(render_tokens_text(session), end="")
        return ingest_exit_code(result)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_counts(args: argparse.Namespace) -> int:
    try:
        session, result = ingest(args)
        apply_filter_flags(session, args)
        if args.json:
            counts = session.counts()
            payload = {
                "contract": build_contract("word_filter.counts"),
                "version": TOOL_VERSION,
                "documents": [
                    {
                        "id": doc_id,
                        "file": session.documents[doc_id].name,
                        "company": session.documents[doc_id].company,
                        "station": session.documents[doc_id].station,
                        "counts": [c.as_dict() for c in doc_counts],
                    }
                    for doc_id, doc_counts in counts.items()
                ],
                "excluded_tokens": session.filter_state.excluded(),
                "run_summary": build_run_summary(
                    command="counts",
                    inputs=args.inputs,
                    documents_ok=len(result.documents),
                    failures=[f.as_dict() for f in result.failures],
                    warnings=[w for doc in result.documents for w in doc.warnings],
                ),
            }
            maybe_emit_json_stdout(payload, True)
        else:
            print(render_counts_text(session), end="")
        return ingest_exit_code(result)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def determine_output_path(args: argparse.Namespace) -> Path:
    if args.output:
        path = Path(args.output)
    else:
        base = Path(args.out_dir) if args.out_dir else Path.cwd()
        path = base / default_output_name()
    if path.exists() and not args.force:
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def run_compile(args: argparse.Namespace) -> int:
    try:
        documents = read_inputs(args.inputs)
        output_path = None if args.dry_run else determine_output_path(args)
        result = compile_documents(documents)
        if output_path is not None:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(result.workbook)
        if args.json:
            payload = {
                "contract": build_contract("metric.compile_summary"),
                "version": TOOL_VERSION,
                "rows": [row.as_record() for row in result.rows],
                "run_summary": build_run_summary(
                    command="compile",
                    inputs=args.inputs,
                    status="partial" if result.failures else "ok",
                    output_path=str(output_path) if output_path else None,
                    documents_ok=result.documents_ok,
                    failures=[f.as_dict() for f in result.failures],
                    warnings=result.warnings,
                    metrics={"rows": len(result.rows)},
                ),
            }
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_compile_preview(result).rstrip(), quiet=args.quiet)
            for line in render_failures(result.failures):
                emit_human(line, quiet=args.quiet)
        if output_path is not None:
            emit_human(f"Compiled workbook: {output_path}", quiet=args.quiet)
        return EXIT_PARTIAL if result.failures else EXIT_SUCCESS
    except EmptyResultError as exc:
        eprint(str(exc))
        if args.json:
            payload = {
                "contract": build_contract("metric.compile_summary"),
                "version": TOOL_VERSION,
                "rows": [],
                "run_summary": build_run_summary(
                    command="compile",
                    inputs=args.inputs,
                    status="failed",
                    failures=[f.as_dict() for f in exc.failures],
                    metrics={"rows": 0},
                ),
            }
            maybe_emit_json_stdout(payload, True)
        else:
            for line in render_failures(exc.failures):
                emit_human(line, quiet=args.quiet)
        return EXIT_EMPTY_RESULT
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("inputs", nargs="+", help="Input .xlsx/.xls files")
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging from the pipeline")


def build_parser() -> argparse.ArgumentParser:
    parser = SheetTallyArgumentParser(
        prog="sheet-tally",
        description="Tally scheduling sheets by word filter and compile capacity reliability sheets.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    tokens = subparsers.add_parser("tokens", help="List distinct data tokens and their default inclusion.")
    add_common_flags(tokens)
    tokens.add_argument("--workers", type=int, default=1, help="Decode documents on N threads")

    counts = subparsers.add_parser("counts", help="Count included data cells per date column.")
    add_common_flags(counts)
    counts.add_argument("--workers", type=int, default=1, help="Decode documents on N threads")
    counts.add_argument("--include", action="append", metavar="TOKEN", help="Include a token (repeatable)")
    counts.add_argument("--exclude", action="append", metavar="TOKEN", help="Exclude a token (repeatable)")
    counts.add_argument("--include-all", dest="include_all", action="store_true", help="Include every token matching --search")
    counts.add_argument("--exclude-all", dest="exclude_all", action="store_true", help="Exclude every token matching --search")
    counts.add_argument("--search", help="Restrict --include-all/--exclude-all to tokens containing this text")

    compile_ = subparsers.add_parser("compile", help="Compile capacity reliability sheets into one workbook.")
    add_common_flags(compile_)
    compile_.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    compile_.add_argument("--output", help="Explicit workbook output path")
    compile_.add_argument("--force", action="store_true", help="Overwrite an existing output file")
    compile_.add_argument("--dry-run", action="store_true", help="Compile without writing the workbook")

    subparsers.add_parser("version", help="Print the tool version.")
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(getattr(args, "verbose", False))
        if args.command == "tokens":
            return run_tokens(args)
        if args.command == "counts":
            return run_counts(args)
        if args.command == "compile":
            return run_compile(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
