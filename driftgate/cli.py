"""Command line entrypoint: ``driftgate run|verify|scan|feedback``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from driftgate.core.errors import ArtifactError
from driftgate.models.governance import FeedbackOutcome, HumanFeedback, RiskLevel, Ruling
from driftgate.repositories.artifact_store import read_json, write_artifacts
from driftgate.repositories.history_store import FileDecisionHistoryStore, history_store_from_settings
from driftgate.schemas.governance import FeedbackRequest, GovernorVerdict
from driftgate.services.differ import format_diff_report
from driftgate.services.enforcement import (
    ExitCode,
    describe_failure,
    enforce,
    resolve_receipt_path,
)
from driftgate.services.governance import GovernanceService
from driftgate.services.pipeline import PipelineService, scan
from driftgate.services.receipts import format_receipt_for_display
from driftgate.telemetry import sink_from_settings

RULE = "=" * 62


def _pipeline(memory: Optional[str]) -> PipelineService:
    sink = sink_from_settings()
    history = FileDecisionHistoryStore(memory) if memory else history_store_from_settings()
    return PipelineService(GovernanceService(sink=sink), history, sink=sink)


def _emit(payload: dict) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")


def cmd_run(args: argparse.Namespace) -> int:
    pipeline = _pipeline(args.memory)
    outcome = asyncio.run(
        pipeline.evaluate(
            args.artifacts,
            args.policy,
            change_id=args.change_id,
            issue_receipt=not args.no_receipt,
        )
    )
    payload = outcome.decision.model_dump(mode="json", exclude_none=True)
    payload["change_id"] = outcome.change_id
    _emit(payload)
    return outcome.exit_code


def cmd_verify(args: argparse.Namespace) -> int:
    path = resolve_receipt_path(args.receipt, args.artifacts)
    outcome = enforce(path, allow_expired=args.allow_expired)
    if args.json:
        _emit(outcome.to_dict())
        return int(outcome.exit_code)

    out = sys.stdout
    out.write(f"\n{RULE}\n  DRIFTGATE AUTHORIZATION VERIFICATION\n{RULE}\n\n")
    out.write(f"  Receipt: {path}\n\n")
    for warning in outcome.warnings:
        out.write(f"  WARNING: {warning}\n\n")
    if outcome.exit_code == ExitCode.AUTHORIZED:
        out.write("  VERIFIED: Authorization confirmed\n\n")
        for line in format_receipt_for_display(outcome.receipt or {}).splitlines():
            out.write(f"  {line}\n")
        out.write("\n  Deployment authorized. Proceed.\n\n")
    else:
        label = "BLOCKED" if outcome.exit_code == ExitCode.BLOCKED else "FAILED"
        out.write(f"  {label}: {outcome.result.message}\n\n")
        for line in describe_failure(outcome):
            out.write(f"  {line}\n")
        out.write("\n")
    out.write(f"{RULE}\n\n")
    return int(outcome.exit_code)


def cmd_scan(args: argparse.Namespace) -> int:
    try:
        baseline = read_json(args.baseline, "baseline")
        current = read_json(args.current, "graph")
        sources = [Path(path).read_text(encoding="utf-8") for path in args.intent_source]
        artifacts = scan(baseline, current, sources, change_id=args.change_id, max_depth=args.max_depth)
    except (ArtifactError, OSError) as exc:
        sys.stderr.write(f"scan failed: {exc}\n")
        return int(ExitCode.FAILED)

    written = write_artifacts(args.artifacts, artifacts)
    sys.stdout.write(format_diff_report(artifacts.drift.diffs) + "\n\n")
    alignment = artifacts.intent.alignment
    if alignment is not None:
        sys.stdout.write(f"Intent alignment: {alignment.status.value}\n")
    for name, path in written.items():
        sys.stdout.write(f"Wrote {name}: {path}\n")
    return 0


def cmd_feedback(args: argparse.Namespace) -> int:
    request = FeedbackRequest(
        change_id=args.change_id,
        governor=GovernorVerdict(decision=args.decision, risk_level=args.risk_level, reasoning=args.reasoning),
        human=HumanFeedback(outcome=args.outcome, override_decision=args.override, notes=args.notes),
        artifacts_dir=args.artifacts,
    )
    result = _pipeline(args.memory).record_feedback(request)
    if not result.ok:
        _emit({"ok": False, "change_id": result.change_id, "error": result.error})
        return int(ExitCode.FAILED)
    _emit(
        {
            "ok": True,
            "change_id": result.change_id,
            "final_ruling": result.entry.final_ruling.value,
            "receipt_issued": result.receipt is not None,
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="driftgate", description="Schema drift governance gate")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Evaluate an artifacts directory and print the decision")
    run.add_argument("--artifacts", default=None, help="Artifacts directory (default: settings)")
    run.add_argument("--policy", default=None, help="Policy document (default: settings)")
    run.add_argument("--memory", default=None, help="Decision history file")
    run.add_argument("--change-id", default=None)
    run.add_argument("--no-receipt", action="store_true", help="Do not write a receipt")
    run.set_defaults(handler=cmd_run)

    verify = commands.add_parser("verify", help="Verify a receipt before deployment")
    source = verify.add_mutually_exclusive_group()
    source.add_argument("--receipt", default=None, help="Path to authorization-receipt.json")
    source.add_argument("--artifacts", default=None, help="Directory containing authorization-receipt.json")
    verify.add_argument("--json", action="store_true", help="Output the result as JSON")
    verify.add_argument("--allow-expired", action="store_true", help="Accept expired receipts (not recommended)")
    verify.set_defaults(handler=cmd_verify)

    scan_cmd = commands.add_parser("scan", help="Build artifacts from two graph snapshots")
    scan_cmd.add_argument("--baseline", required=True, help="Baseline graph document")
    scan_cmd.add_argument("--current", required=True, help="Current graph document")
    scan_cmd.add_argument("--artifacts", required=True, help="Output artifacts directory")
    scan_cmd.add_argument("--intent-source", action="append", default=[], help="File with @intent comments")
    scan_cmd.add_argument("--change-id", default=None)
    scan_cmd.add_argument("--max-depth", type=int, default=None)
    scan_cmd.set_defaults(handler=cmd_scan)

    feedback = commands.add_parser("feedback", help="Record a human verdict on a decision")
    feedback.add_argument("--memory", default=None, help="Decision history file")
    feedback.add_argument("--artifacts", default=None, help="Artifacts directory for the receipt")
    feedback.add_argument("--change-id", required=True)
    feedback.add_argument("--decision", required=True, choices=[item.value for item in Ruling])
    feedback.add_argument("--risk-level", default=RiskLevel.MEDIUM.value, choices=[item.value for item in RiskLevel])
    feedback.add_argument("--reasoning", action="append", default=[])
    feedback.add_argument("--outcome", required=True, choices=[item.value for item in FeedbackOutcome])
    feedback.add_argument("--override", default=None, choices=[item.value for item in Ruling])
    feedback.add_argument("--notes", default=None)
    feedback.set_defaults(handler=cmd_feedback)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
