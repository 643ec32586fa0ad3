"""Shared versioned contracts for sheet-tally JSON outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "word_filter.tokens": "1.0.0",
    "word_filter.counts": "1.0.0",
    "metric.compile_summary": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    inputs: list[str],
    status: str = "ok",
    output_path: str | None = None,
    documents_ok: int = 0,
    failures: list[dict[str, str]] | None = None,
    warnings: list[str] | None = None,
    metrics: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "sheet-tally",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_files": list(inputs),
        "output_file": output_path,
        "documents_total": len(inputs),
        "documents_ok": documents_ok,
        "failures": list(failures or []),
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
