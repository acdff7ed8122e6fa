from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from aedmatch.app import (
    Backend,
    ConflictPolicy,
    Overrides,
    build_workflow,
    check_basket,
    fetch_candidates,
    get_matching_status,
    match_basket,
    resolve_institution,
    unmatch_institution,
)
from aedmatch.config import configure_logging, get_matching_config
from aedmatch.config.errors import ConfigurationError
from aedmatch.config.logging import LOG_DATE_FORMAT, LOG_FORMAT
from aedmatch.domain.errors import BasketValidationError, MatchingError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from aedmatch.domain.matching.conflicts import ConflictReport
    from aedmatch.domain.matching_status import MatchingStatus
    from aedmatch.domain.model import EquipmentGroup
    from aedmatch.domain.ports.fetching import CandidateFetchResult

log = logging.getLogger(__name__)


def _add_basket_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("target_key", help="Target institution key")
    parser.add_argument(
        "management_numbers",
        nargs="+",
        help="Management numbers to put in the basket",
    )
    parser.add_argument(
        "--serial",
        dest="serials",
        action="append",
        default=[],
        help="Claim only this serial of its group (repeatable)",
    )


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Match AEDs to mandated institutions")
    parser.add_argument(
        "--backend",
        choices=[backend.value for backend in Backend],
        default=Backend.LOCAL.value,
        help="Where matches live (default: %(default)s)",
    )
    parser.add_argument("--year", type=int, help="Target-list year (defaults to config)")
    parser.add_argument("--operator", type=str, help="Operator id recorded with commits")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    candidates = subparsers.add_parser("candidates", help="List candidate equipment groups")
    candidates.add_argument("target_key", help="Target institution key")
    candidates.add_argument("--search", type=str, help="Free-text filter")
    candidates.add_argument(
        "--all-region",
        action="store_true",
        help="Search outside the institution's region",
    )
    candidates.add_argument(
        "--include-matched",
        action="store_true",
        help="Include groups that are already matched",
    )

    check = subparsers.add_parser("check", help="Check a basket for conflicting matches")
    _add_basket_arguments(check)

    match = subparsers.add_parser("match", help="Commit a basket to an institution")
    _add_basket_arguments(match)
    match.add_argument(
        "--on-conflict",
        choices=[policy.value for policy in ConflictPolicy],
        default=ConflictPolicy.ABORT.value,
        help="Decision applied to conflicting devices (default: %(default)s)",
    )
    match.add_argument(
        "--evict",
        action="append",
        default=[],
        help="Remove this serial from the institution that claims it (repeatable)",
    )
    match.add_argument(
        "--evict-institution",
        dest="evict_institutions",
        action="append",
        default=[],
        help="Remove every conflicting claim of this institution (repeatable)",
    )
    match.add_argument(
        "--withdraw",
        action="append",
        default=[],
        help="Leave this serial out of the new claim (repeatable)",
    )

    unmatch = subparsers.add_parser("unmatch", help="Remove all matches of an institution")
    unmatch.add_argument("target_key", help="Target institution key")
    unmatch.add_argument("--reason", type=str, help="Reason recorded in the match log")

    status = subparsers.add_parser("status", help="Show matching progress (local backend)")
    status.add_argument("--sido", type=str, help="Restrict to one province")
    status.add_argument("--gugun", type=str, help="Restrict to one district")

    args = parser.parse_args(list(argv))
    if args.year is not None and args.year <= 0:
        raise ValueError("Year must be positive")
    if args.command == "status" and args.backend != Backend.LOCAL.value:
        raise ValueError("Status is only available for the local backend")
    return args


def _log_group(group: EquipmentGroup) -> None:
    confidence = "-" if group.confidence is None else f"{group.confidence:.0f}"
    log.info(
        "  %s  %s  devices=%s  confidence=%s%s",
        group.management_number,
        group.institution_name,
        group.equipment_count,
        confidence,
        "  (matched)" if group.is_matched else "",
    )


def _log_candidates(result: CandidateFetchResult) -> None:
    log.info("Suggested (%s):", len(result.auto_suggestions))
    for group in result.auto_suggestions:
        _log_group(group)
    log.info("Search results (%s):", len(result.search_results))
    for group in result.search_results:
        _log_group(group)


def _log_report(report: ConflictReport) -> None:
    log.info(
        "%s: devices=%s, already matched=%s, matched elsewhere=%s, unmatched=%s",
        report.target_key,
        report.total_devices,
        report.already_matched_to_target,
        report.matched_to_other,
        report.unmatched,
    )
    for conflict in report.conflicts:
        log.warning(
            "  %s (%s) matched to %s",
            conflict.equipment_serial,
            conflict.management_number,
            ", ".join(conflict.other_target_keys),
        )
    log.info(report.summary)


def _log_status(status: MatchingStatus) -> None:
    log.info(
        "Year %s: %s/%s institutions matched (%.1f%%), %s devices",
        status.year,
        status.matched_institutions,
        status.total_institutions,
        status.matching_rate,
        status.matched_equipment,
    )


def _run(args: argparse.Namespace) -> None:
    backend = Backend(args.backend)
    if args.command == "status":
        _log_status(get_matching_status(year=args.year, sido=args.sido, gugun=args.gugun))
        return

    config = get_matching_config()
    if args.year is not None:
        config = replace(config, year=args.year)
    workflow = build_workflow(backend=backend, config=config, operator=args.operator)
    institution = resolve_institution(args.target_key, backend=backend)

    if args.command == "candidates":
        _log_candidates(
            fetch_candidates(
                workflow,
                institution,
                search=args.search,
                include_all_region=args.all_region,
                include_matched=args.include_matched,
            )
        )
    elif args.command == "check":
        _log_report(
            check_basket(workflow, institution, args.management_numbers, serials=args.serials)
        )
    elif args.command == "match":
        outcome = match_basket(
            workflow,
            institution,
            args.management_numbers,
            serials=args.serials,
            policy=ConflictPolicy(args.on_conflict),
            overrides=Overrides(
                evict=tuple(args.evict),
                evict_institutions=tuple(args.evict_institutions),
                withdraw=tuple(args.withdraw),
            ),
        )
        if outcome.result is not None:
            log.info(
                "Committed %s: groups=%s, devices=%s, new=%s, evicted=%s",
                outcome.plan.strategy,
                outcome.result.matched_management_numbers,
                outcome.result.matched_equipment,
                outcome.result.newly_matched,
                outcome.result.evicted,
            )
    elif args.command == "unmatch":
        unmatch_institution(workflow, institution, reason=args.reason)
    else:
        raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(verbose=parsed_args.verbose)
    except (ValueError, ConfigurationError):
        logging.basicConfig(format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        _run(parsed_args)
    except (BasketValidationError, ConfigurationError) as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(2)
    except MatchingError as exc:
        hint = " (retry may succeed)" if exc.retryable else ""
        log.error("%s%s", exc, hint)  # noqa: TRY400
        sys.exit(1)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console-script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
