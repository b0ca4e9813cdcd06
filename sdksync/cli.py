"""CLI entrypoints for sdksync commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .errors import SyncError
from .logging import configure_logging
from .orchestrator import SyncOrchestrator, SyncOutcome

EXIT_OK = 0
EXIT_UNEXPECTED = 1


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return parsed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sdksync",
        description="Replay smithy-rs history into a generated SDK repository.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write detailed logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync",
        help="Mirror new upstream revisions into the target repository.",
    )
    _add_verbose_option(sync_parser, suppress_default=True)
    sync_parser.add_argument(
        "--smithy-rs",
        required=True,
        help="Path to the smithy-rs (generator) repository.",
    )
    sync_parser.add_argument(
        "--aws-doc-sdk-examples",
        required=True,
        help="Path to the aws-doc-sdk-examples repository.",
    )
    sync_parser.add_argument(
        "--target",
        required=True,
        help="Path to the generated SDK repository to update.",
    )
    sync_parser.add_argument(
        "--revision",
        default=None,
        help="Sync up to this smithy-rs revision instead of its HEAD.",
    )
    sync_parser.add_argument(
        "--examples-revision",
        default=None,
        help="Build against this aws-doc-sdk-examples revision instead of its HEAD.",
    )
    sync_parser.add_argument(
        "--max-revisions",
        type=_positive_int,
        default=None,
        help="Replay at most this many upstream revisions in this run.",
    )
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan and classify revisions without building or committing.",
    )
    sync_parser.add_argument(
        "--push",
        action="store_true",
        default=None,
        help="Push the target branch after a successful run.",
    )

    ledger_parser = subparsers.add_parser(
        "ledger",
        help="Print the sync ledger reconstructed from the target repository.",
    )
    _add_verbose_option(ledger_parser, suppress_default=True)
    ledger_parser.add_argument(
        "--target",
        default=".",
        help="Path to the generated SDK repository (defaults to current directory).",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service that triggers syncs for CI webhooks.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for sdksync commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    orchestrator = SyncOrchestrator()

    if args.command == "sync":
        try:
            outcome = orchestrator.run_sync(
                args.smithy_rs,
                args.aws_doc_sdk_examples,
                args.target,
                revision=args.revision,
                examples_revision=args.examples_revision,
                max_revisions=args.max_revisions,
                dry_run=bool(args.dry_run),
                push=args.push,
            )
        except SyncError as exc:
            parser.exit(exc.exit_code, f"sdksync sync failed: {exc}\n")
        except Exception as exc:  # pragma: no cover - unexpected failure
            parser.exit(
                EXIT_UNEXPECTED,
                f"sdksync sync failed: {exc}\nRun with --verbose for more details.\n",
            )
        _report(outcome)
        if outcome.error is not None:
            parser.exit(outcome.error.exit_code, _failure_message(outcome))
    elif args.command == "ledger":
        try:
            ledger = orchestrator.read_ledger(args.target)
        except SyncError as exc:
            parser.exit(exc.exit_code, f"sdksync ledger failed: {exc}\n")
        if not ledger.entries:
            print("Ledger is empty")
        for entry in ledger.entries:
            print(
                f"{entry.timestamp.isoformat()} {entry.kind:<7} "
                f"{entry.upstream_revision_id} -> {entry.local_commit_id or '-'}"
            )
    elif args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(EXIT_UNEXPECTED, "Unknown command\n")


def _report(outcome: SyncOutcome) -> None:
    if outcome.status == "lock_held":
        print("Another sync run is in progress; nothing to do")
    elif outcome.status == "up_to_date":
        print("Target already up to date")
    elif outcome.status == "dry_run":
        print("Planned revisions (dry-run):")
        if not outcome.planned:
            print("  (none)")
        for item in outcome.planned:
            action = "build" if item.build else "skip"
            print(f"  {item.revision.id} {action:<5} {item.revision.subject}")
    elif outcome.status == "synced":
        print(
            f"Synced {len(outcome.ledger_entries)} upstream revisions "
            f"with {len(outcome.commits)} commits"
        )
        for commit in outcome.commits:
            print(
                f"  {commit.commit_id[:10]} smithy-rs {commit.smithy_rs_revision[:10]} "
                f"({commit.changed_files} files)"
            )


def _failure_message(outcome: SyncOutcome) -> str:
    error = outcome.error
    lines = [f"sdksync sync failed ({error.kind if error else 'unknown'}): {error}"]
    if outcome.failed_revision:
        lines.append(f"  revision: {outcome.failed_revision}")
    if error is not None and error.path:
        lines.append(f"  path: {error.path}")
    if outcome.status != "lock_held":
        lines.append("Run with --verbose for more details.")
    return "\n".join(lines) + "\n"


if __name__ == "__main__":
    main(sys.argv[1:])
