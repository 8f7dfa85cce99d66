# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from datetime import timedelta
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from donorlens.app import (
    checkpoint_summary,
    research_prospect,
    research_prospects,
    reset_subject,
    stale_checkpoints,
)
from donorlens.common.logging import configure_logging
from donorlens.config import get_pipeline_settings
from donorlens.domain.subject import SubjectContext, derive_subject_id

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from donorlens.config import PipelineSettings

log = logging.getLogger(__name__)

_SUBJECT_FIELDS = ("city", "state", "employer", "title")


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Research fundraising prospects")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    research = subparsers.add_parser("research", help="Research a single prospect")
    research.add_argument("name", type=str, help="Full name of the prospect")
    research.add_argument("--subject-id", type=str, help="Explicit id (defaults to a stable hash)")
    research.add_argument("--city", type=str, help="City the prospect lives in")
    research.add_argument("--state", type=str, help="US state, name or abbreviation")
    research.add_argument("--employer", type=str, help="Current employer")
    research.add_argument("--title", type=str, help="Current job title")
    _add_run_flags(research)

    batch = subparsers.add_parser("batch", help="Research every prospect listed in a JSON file")
    batch.add_argument(
        "path",
        type=Path,
        help="JSON array of subjects: name plus optional subject_id, city, state, employer, title"
    )
    batch.add_argument(
        "--max-concurrent",
        type=int,
        help="Subjects researched at the same time (defaults to config)",
    )
    _add_run_flags(batch)

    checkpoints = subparsers.add_parser("checkpoints", help="Inspect or reset checkpoints")
    checkpoints_sub = checkpoints.add_subparsers(dest="checkpoints_command", required=True)
    show = checkpoints_sub.add_parser("show", help="Show step checkpoints for a subject")
    show.add_argument("subject_id", type=str)
    reset = checkpoints_sub.add_parser("reset", help="Delete all checkpoints for a subject")
    reset.add_argument("subject_id", type=str)
    stale = checkpoints_sub.add_parser("stale", help="List steps stuck in processing")
    stale.add_argument(
        "--minutes",
        type=float,
        help="Age after which a processing step counts as stale (defaults to config)",
    )

    return parser.parse_args(list(argv))


def _add_run_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-run steps even when a completed checkpoint exists",
    )
    parser.add_argument(
        "--skip-verification",
        action="store_true",
        help="Do not cross-check claims against authoritative services",
    )
    parser.add_argument(
        "--no-optional",
        action="store_true",
        help="Skip optional research steps",
    )


def _settings(args: argparse.Namespace) -> PipelineSettings:
    base = get_pipeline_settings()
    max_concurrent = getattr(args, "max_concurrent", None)
    if max_concurrent is not None and max_concurrent < 1:
        raise ValueError("--max-concurrent must be at least 1")
    return replace(
        base,
        run_optional_steps=base.run_optional_steps and not args.no_optional,
        skip_verification=base.skip_verification or args.skip_verification,
        max_concurrent_subjects=max_concurrent or base.max_concurrent_subjects,
    )


def _subject(
    name: str,
    *,
    subject_id: str | None = None,
    city: str | None = None,
    state: str | None = None,
    employer: str | None = None,
    title: str | None = None,
) -> SubjectContext:
    return SubjectContext(
        subject_id=subject_id or derive_subject_id(name, city=city, state=state),
        name=name,
        city=city,
        state=state,
        employer=employer,
        title=title,
    )


def _load_subjects(path: Path) -> list[SubjectContext]:
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read subjects from {path}: {exc}") from exc
    if not isinstance(entries, list):
        raise ValueError(f"{path} must contain a JSON array of subjects")

    subjects: list[SubjectContext] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            raise ValueError(f"Subject #{index} in {path} needs a 'name'")
        fields = {key: entry.get(key) for key in _SUBJECT_FIELDS if isinstance(entry.get(key), str)}
        subject_id = entry.get("subject_id")
        subjects.append(
            _subject(
                entry["name"],
                subject_id=subject_id if isinstance(subject_id, str) else None,
                **fields,
            )
        )
    return subjects


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _run(args: argparse.Namespace) -> int:
    if args.command == "research":
        subject = _subject(
            args.name,
            subject_id=args.subject_id,
            city=args.city,
            state=args.state,
            employer=args.employer,
            title=args.title,
        )
        result = research_prospect(subject, settings=_settings(args), force=args.force)
        _print_json(result.to_payload())
        return 0 if result.success else 1

    if args.command == "batch":
        subjects = _load_subjects(args.path)
        results = research_prospects(subjects, settings=_settings(args), force=args.force)
        _print_json([result.to_payload() for result in results])
        return 0 if all(result.success for result in results) else 1

    if args.command == "checkpoints":
        if args.checkpoints_command == "show":
            _print_json(checkpoint_summary(args.subject_id))
        elif args.checkpoints_command == "reset":
            _print_json({"subject_id": args.subject_id, "removed": reset_subject(args.subject_id)})
        elif args.checkpoints_command == "stale":
            older_than = timedelta(minutes=args.minutes) if args.minutes is not None else None
            _print_json(
                [
                    {
                        "subject_id": record.subject_id,
                        "step": record.step_name,
                        "attempts": record.attempts,
                        "updated_at": record.updated_at.isoformat(),
                    }
                    for record in stale_checkpoints(older_than=older_than)
                ]
            )
        return 0

    raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
    except ValueError:
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO, force=True)

    try:
        exit_code = _run(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during research")
        sys.exit(1)
    sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C); completed steps are checkpointed")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
