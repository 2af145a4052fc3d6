"""
report.py: proof history written out for people and for tools.

Two files land in the run directory:
  history.json     prover status, history statistics, every record
  PROOF_REPORT.md  summary table plus one section per proof

Payload bytes appear as hex in the JSON; the markdown shows hash prefixes.
"""

from __future__ import annotations

import json
from pathlib import Path

from move_prover.models import HistoryStats, ProofRecord, ProverStatus


def write_json_report(
    records: list[ProofRecord],
    status: ProverStatus,
    stats: HistoryStats,
    run_dir: Path,
) -> Path:
    """Write (or overwrite) the JSON report. Returns the file path."""
    run_dir.mkdir(parents=True, exist_ok=True)
    report_path = run_dir / "history.json"
    payload = {
        "status": status.to_dict(),
        "stats": stats.to_dict(),
        "records": [r.to_dict() for r in records],
    }
    report_path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    return report_path


def write_markdown_report(
    records: list[ProofRecord],
    status: ProverStatus,
    stats: HistoryStats,
    run_dir: Path,
) -> Path:
    """Write the markdown report. Returns the file path."""
    run_dir.mkdir(parents=True, exist_ok=True)
    report_path = run_dir / "PROOF_REPORT.md"
    report_path.write_text(_render_markdown(records, status, stats), encoding="utf-8")
    return report_path


def _render_markdown(
    records: list[ProofRecord],
    status: ProverStatus,
    stats: HistoryStats,
) -> str:
    lines: list[str] = []

    lines.append("# Proof Report")
    lines.append("")
    lines.append(f"Prover: {status.proof_type} ({status.state.value})")
    lines.append(f"Real proofs active: {'yes' if status.using_real_proofs else 'no'}")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric              | Value |")
    lines.append("|---------------------|-------|")
    lines.append(f"| Proofs              | {stats.count} |")
    lines.append(f"| Real                | {stats.real_count} |")
    lines.append(f"| Simulated           | {stats.fallback_count} |")
    lines.append(f"| Real share          | {stats.real_percentage:.0f}% |")
    lines.append(f"| Mean time           | {_format_ms(stats.mean_execution_time_ms)} |")
    lines.append(f"| Mean payload size   | {stats.mean_payload_size:.0f} B |")
    lines.append("")

    lines.append("## Proofs")
    lines.append("")

    for record in records:
        move = record.snapshot.last_move
        move_text = f"{move.from_square}{move.to_square}" if move else "initial position"
        lines.append(f"### Move {record.snapshot.move_number}: {move_text} ({record.mode.value.upper()})")
        lines.append(f"- Id: `{record.id}`")
        lines.append(f"- Prover: {record.prover}")
        lines.append(f"- Verified: {'yes' if record.verified else 'no'}")
        lines.append(f"- Time: {_format_ms(record.execution_time_ms)}")
        lines.append(f"- Size: {record.payload_size} B")
        lines.append(f"- Content hash: `{record.detail.content_hash[:16]}`")
        if record.detail.previous_hash:
            lines.append(f"- Chain link: `{record.detail.previous_hash[:16]}`")
        lines.append("")

    return "\n".join(lines)


def _format_ms(ms: float) -> str:
    if ms < 1000:
        return f"{ms:.0f}ms"
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {int(seconds % 60):02d}s"
