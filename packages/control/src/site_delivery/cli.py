from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from site_delivery.app import ControlPlane, build_control_plane
from site_delivery.core import (
    DeliveryError,
    bind,
    configure_logging,
    get_logger,
    load_settings,
    parse_json_object,
)
from site_delivery.feedback import (
    BuildResultFeedbackService,
    FeedbackStatus,
    RecordingSink,
)
from site_delivery.pipeline import PipelineRun, RunStatus
from site_delivery.source import ChangeReference

console = Console()

_STATUS_STYLE: dict[str, str] = {
    RunStatus.IN_PROGRESS.value: "yellow",
    RunStatus.SUCCEEDED.value: "green",
    RunStatus.FAILED.value: "red",
    RunStatus.REJECTED.value: "red",
    RunStatus.CANCELED.value: "dim",
    RunStatus.SUPERSEDED.value: "dim",
}


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="site-delivery")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("start", help="Start a run for the tracked branch")
    sp.add_argument(
        "--commit",
        default=None,
        help="Commit to run. If omitted, resolves the branch head from the provider.",
    )
    sp.add_argument("--before", default=None, help="Previous head, for the record")

    for cmd, help_text in (
        ("approve", "Approve a run waiting at Approval"),
        ("reject", "Reject a run waiting at Approval"),
    ):
        sp = sub.add_parser(cmd, help=help_text)
        sp.add_argument("run_id")
        sp.add_argument("--reviewer", default=None)
        sp.add_argument("--summary", default=None)

    sp = sub.add_parser("cancel", help="Cancel a run that has not finished")
    sp.add_argument("run_id")
    sp.add_argument("--reason", default=None)

    sp = sub.add_parser("status", help="List runs, or show one run's stages")
    sp.add_argument("run_id", nargs="?", default=None)

    sp = sub.add_parser("route", help="Route a build or pipeline state change event")
    sp.add_argument("event", type=Path, help="Path to the event JSON")

    sp = sub.add_parser("feedback", help="Post the verdict for a build completion event")
    sp.add_argument("event", type=Path, help="Path to the event JSON")
    sp.add_argument(
        "--dry-run",
        action="store_true",
        help="Render the comment without posting it",
    )

    return p


def _read_event(path: Path) -> dict[str, Any]:
    return parse_json_object(path.read_bytes(), label=str(path))


def _styled(status: str) -> str:
    style = _STATUS_STYLE.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _print_run(run: PipelineRun) -> None:
    console.print(
        Panel.fit(
            Text(
                f"{run.pipeline_name} - {run.run_id}\n"
                f"{run.change.repository_id}@{run.change.branch_name} "
                f"{run.change.commit_range}",
                style="bold",
            ),
            title="Run",
        )
    )
    tbl = Table(show_header=True, box=None)
    tbl.add_column("stage")
    tbl.add_column("status")
    tbl.add_column("started")
    tbl.add_column("finished")
    tbl.add_column("error")
    for result in run.stages.values():
        tbl.add_row(
            result.stage_name.value,
            _styled(result.status.value),
            result.started_at_utc or "",
            result.finished_at_utc or "",
            result.error.message if result.error else "",
        )
    console.print(tbl)
    console.print(f"run status: {_styled(run.status.value)}")


def _print_runs(runs: list[PipelineRun]) -> None:
    tbl = Table(title="Runs", show_header=True, box=None)
    tbl.add_column("run_id")
    tbl.add_column("status")
    tbl.add_column("stage")
    tbl.add_column("commit")
    tbl.add_column("created")
    for run in runs:
        tbl.add_row(
            run.run_id,
            _styled(run.status.value),
            run.current_stage.value if run.current_stage else "",
            run.change.after_commit[:12],
            run.created_at_utc,
        )
    console.print(tbl)


def _cmd_start(plane: ControlPlane, args: argparse.Namespace) -> int:
    provider = plane.provider
    if args.commit:
        change = ChangeReference(
            repository_id=provider.repository_id,
            branch_name=provider.branch,
            before_commit=args.before,
            after_commit=args.commit,
        )
    else:
        with console.status("[bold]resolving branch[/]", spinner="dots"):
            change = provider.head_change()
    run = plane.machine.start(change)
    _print_run(run)
    return 1 if run.status in (RunStatus.FAILED, RunStatus.REJECTED) else 0


def _cmd_feedback(plane: ControlPlane, args: argparse.Namespace) -> int:
    service = plane.feedback
    if args.dry_run:
        service = BuildResultFeedbackService(
            sink=RecordingSink(),
            validation_project=plane.settings.validation_project,
        )
    result = service.handle(_read_event(args.event))

    tbl = Table(title="Feedback", show_header=True, box=None)
    tbl.add_row("status", result.status.value)
    if result.reason:
        tbl.add_row("reason", result.reason)
    if result.comment is not None:
        tbl.add_row("pull request", result.comment.change_request_id)
        tbl.add_row("repository", result.comment.repository_name)
        tbl.add_row("comment", result.comment.rendered_text)
    console.print(tbl)
    return 1 if result.status is FeedbackStatus.FAILED else 0


def _cmd_route(plane: ControlPlane, args: argparse.Namespace) -> int:
    report = plane.router.dispatch_raw(_read_event(args.event))
    if report is None:
        console.print("[yellow]event type is not routable[/yellow]")
        return 0
    tbl = Table(title="Dispatch", show_header=True, box=None)
    tbl.add_row("matched", ", ".join(report.matched) or "-")
    tbl.add_row("delivered", ", ".join(report.delivered) or "-")
    for name, err in report.failed.items():
        tbl.add_row(f"[red]failed[/red] {name}", err)
    console.print(tbl)
    return 0 if report.ok else 1


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    s = load_settings()
    configure_logging(level=s.log_level, fmt=s.log_format)
    log = get_logger("site_delivery")
    bind(command=str(args.cmd), pipeline=s.pipeline_name)

    try:
        plane = build_control_plane(s, logger=log)
        machine = plane.machine

        if args.cmd == "start":
            return _cmd_start(plane, args)
        if args.cmd == "approve":
            _print_run(machine.approve(args.run_id, reviewer=args.reviewer, summary=args.summary))
            return 0
        if args.cmd == "reject":
            _print_run(machine.reject(args.run_id, reviewer=args.reviewer, summary=args.summary))
            return 0
        if args.cmd == "cancel":
            _print_run(machine.cancel(args.run_id, reason=args.reason))
            return 0
        if args.cmd == "status":
            if args.run_id:
                _print_run(machine.get(args.run_id))
            else:
                _print_runs(machine.runs())
            return 0
        if args.cmd == "route":
            return _cmd_route(plane, args)
        if args.cmd == "feedback":
            return _cmd_feedback(plane, args)
    except DeliveryError as e:
        log.error("Command failed", error=str(e), exc_type=type(e).__name__)
        console.print(f"[red]{type(e).__name__}:[/red] {e}")
        return 2

    raise AssertionError(f"unhandled command {args.cmd!r}")


if __name__ == "__main__":
    raise SystemExit(main())
