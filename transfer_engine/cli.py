"""
Transfer matching CLI.

Runs the engine over a JSON file of transactions and prints a summary or
the full report.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

from transfer_engine.core.config import get_settings
from transfer_engine.core.logging import configure_logging
from transfer_engine.exceptions import TransferEngineError
from transfer_engine.matching.boundary import BoundaryConfig
from transfer_engine.matching.config import MatchingConfig
from transfer_engine.matching.engine import TransferMatchingEngine, TransferMatchReport
from transfer_engine.normalization.models import AccountMeta, TransactionRecord
from transfer_engine.normalization.normalizer import to_minor_units

logger = structlog.get_logger()

USAGE = """Usage: python -m transfer_engine.cli <command> [options]

Commands:
  match <file.json>   Match transfers in a JSON file of transactions

Options:
  --boundary A,B      Comma-separated boundary account ids
  --window N          Day window (clamped to 0-7)
  --min-matched X     Matched threshold (clamped to 0-1)
  --min-uncertain Y   Uncertain threshold (clamped to 0-1)
  --json              Print the full report as JSON

Examples:
  python -m transfer_engine.cli match statements.json
  python -m transfer_engine.cli match statements.json --boundary everyday,savings --json"""

_VALUE_OPTIONS = {
    "--boundary": "boundary",
    "--window": "window_days",
    "--min-matched": "min_matched",
    "--min-uncertain": "min_uncertain",
}


def parse_options(args: list[str]) -> tuple[list[str], dict[str, Any]]:
    """
    Split CLI arguments into positionals and options.

    Raises:
        ValueError: If an option is unknown or misses its value
    """
    positionals: list[str] = []
    options: dict[str, Any] = {"json": False}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--json":
            options["json"] = True
        elif arg in _VALUE_OPTIONS:
            if i + 1 >= len(args):
                raise ValueError(f"{arg} needs a value")
            options[_VALUE_OPTIONS[arg]] = args[i + 1]
            i += 1
        elif arg.startswith("--"):
            raise ValueError(f"Unknown option: {arg}")
        else:
            positionals.append(arg)
        i += 1
    return positionals, options


def _record_from_json(raw: dict[str, Any]) -> TransactionRecord:
    # Files exported by statement tools often carry major-unit amounts
    if "amount_minor" not in raw and "amount" in raw:
        raw = {**raw, "amount_minor": to_minor_units(raw["amount"])}
        raw.pop("amount")
    return TransactionRecord.model_validate(raw)


def load_input(
    path: Path,
) -> tuple[list[TransactionRecord], BoundaryConfig, list[AccountMeta]]:
    """
    Load transactions from a JSON file.

    The file holds either a list of transactions or an object with
    ``records`` and optional ``boundary`` and ``account_meta`` keys.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        data = {"records": data}

    records = [_record_from_json(item) for item in data.get("records", [])]
    boundary = BoundaryConfig.model_validate(data.get("boundary") or {})
    account_meta = [AccountMeta.model_validate(m) for m in data.get("account_meta", [])]
    return records, boundary, account_meta


def print_summary(report: TransferMatchReport) -> None:
    """Pretty print a report summary."""
    stats = report.stats
    print("\n=== Transfer Matching Summary ===\n")
    print(f"Transactions: {stats.transaction_count}")
    print(f"Candidates: {stats.candidate_count}")
    print(f"Matched: {stats.matched_pairs}")
    print(f"Uncertain: {stats.uncertain_pairs}")
    print(f"Ignored: {stats.ignored_pairs}")
    print(f"Internal offsets: {stats.internal_offset_pairs}")
    print(f"Boundary flows: {stats.boundary_flow_pairs}")
    print(f"Excluded transactions: {stats.excluded_transaction_count}")
    print(f"Excluded amount: {stats.excluded_amount_minor / 100:.2f}")
    print(f"Collision buckets: {stats.collision_buckets}")

    if stats.top_hints:
        print("\n--- Top Hints ---")
        for name, count in stats.top_hints:
            print(f"{name}: {count}")
    if stats.top_penalties:
        print("\n--- Top Penalties ---")
        for name, count in stats.top_penalties:
            print(f"{name}: {count}")

    if report.results:
        print("\n--- Results ---")
        for result in report.results:
            print(
                f"{result.out_leg.transaction_id} -> {result.in_leg.transaction_id} "
                f"{result.amount_minor / 100:.2f} | {result.state.value} | "
                f"{result.decision.value if result.decision else '-'} | "
                f"{result.confidence:.2f}"
            )
            print(f"  {result.why_sentence}")
    print()


def match_command(path: str, options: dict[str, Any]) -> int:
    """Run the engine over one file."""
    file_path = Path(path)
    if not file_path.is_file():
        print(f"File not found: {path}")
        return 1

    records, boundary, account_meta = load_input(file_path)
    if options.get("boundary"):
        ids = [part for part in options["boundary"].split(",") if part.strip()]
        boundary = BoundaryConfig(
            account_ids=ids,
            aliases=boundary.aliases,
            account_meta=boundary.account_meta,
        )

    settings = get_settings()
    config = MatchingConfig.from_raw(
        window_days=options.get("window_days", settings.TRANSFER_WINDOW_DAYS),
        min_matched=options.get("min_matched", settings.TRANSFER_MIN_MATCHED),
        min_uncertain=options.get("min_uncertain", settings.TRANSFER_MIN_UNCERTAIN),
        debug=settings.DEBUG,
    )

    report = TransferMatchingEngine(config).run(
        records, boundary=boundary, account_meta=account_meta
    )
    if options.get("json"):
        payload = report.model_dump(mode="json")
        payload["annotations"] = {
            key: value.model_dump(mode="json")
            for key, value in report.annotations().items()
        }
        print(json.dumps(payload, indent=2))
    else:
        print_summary(report)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(USAGE)
        return 1

    settings = get_settings()
    # Keep stdout clean for machine-readable output
    configure_logging(settings.ENV, "WARNING" if "--json" in args else settings.LOG_LEVEL)

    command = args[0]
    try:
        positionals, options = parse_options(args[1:])
        if command == "match":
            if not positionals:
                print("match needs a JSON file")
                return 1
            return match_command(positionals[0], options)
        else:
            print(f"Unknown command: {command}")
            return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except TransferEngineError as e:
        print(f"Error: {e.message}")
        return 2
    except Exception as e:
        print(f"Error: {str(e)}")
        logger.exception("cli_error", command=command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
