"""
Supplier ledger reconciliation from the command line.

Loads transactions and payments from JSON files (lists of records, camelCase
as exported by the capture layer) and prints one of:
- summaries: per-profile totals plus the mill overview
- anomalies: negative-outstanding entries and their reasons
- statement: the chronological ledger for one profile
- plan: dry-run paid_for trims for the anomaly entries

Examples:
    python scripts/reconcile.py data/transactions.json data/payments.json
    python scripts/reconcile.py t.json p.json --view anomalies --search ram
    python scripts/reconcile.py t.json p.json --view statement --profile "ram|shyam|rampur"
"""

import argparse
import json
import logging
from pathlib import Path
from typing import List

import sys
sys.path.append(str(Path(__file__).resolve().parents[1]))

from core.observability.logging import configure_logging
from models.summaries import ReconciliationResult
from reconciliation.anomalies import (
    count_categories,
    detect_anomalies,
    export_anomalies_json,
    filter_entries,
    plan_fixes,
)
from reconciliation.config import load_config
from reconciliation.engine import load_payments, recompute, save_result, save_statement
from reconciliation.errors import ReconciliationError
from reconciliation.statement import build_statement_sync


REPO_ROOT = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = REPO_ROOT / "artifacts" / "reconciliation"


def load_records(path: Path) -> List[dict]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        # Accept {"items": [...]} style exports too
        data = data.get("items", [])
    return data


def print_summaries(result: ReconciliationResult) -> None:
    """Print profile totals in a readable format."""
    print(f"\nRun: {result.run_id} ({result.strategy})")
    print(
        f"Profiles: {result.grouping.total_groups} "
        f"({result.grouping.merged_groups} merged, {result.grouping.single_groups} single)"
    )
    if result.unlinked_payments:
        print(f"Unlinked payments: {len(result.unlinked_payments)}")

    print(f"\n{'Profile':<40} {'Entries':>7} {'Original':>12} {'Paid':>12} {'CD':>10} {'Outstanding':>12}")
    for key, s in result.profiles.items():
        label = f"{s.name} s/o {s.father_name}" if s.father_name else s.name
        if s.is_outsider:
            label += " [outsider]"
        print(
            f"{label[:40]:<40} {s.total_transactions:>7} {s.total_original_amount:>12} "
            f"{s.total_paid:>12} {s.total_cd:>10} {s.total_outstanding:>12}"
        )

    mill = result.mill_overview
    if mill is not None:
        print("-" * 98)
        print(
            f"{mill.name:<40} {mill.total_transactions:>7} {mill.total_original_amount:>12} "
            f"{mill.total_paid:>12} {mill.total_cd:>10} {mill.total_outstanding:>12}"
        )


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile supplier transactions and payments")
    parser.add_argument("transactions", type=Path, help="JSON file of transactions")
    parser.add_argument("payments", type=Path, help="JSON file of payments")
    parser.add_argument("--strategy", choices=["strict", "fuzzy"], help="Profile resolution strategy")
    parser.add_argument(
        "--view",
        choices=["summaries", "anomalies", "statement", "plan"],
        default="summaries",
    )
    parser.add_argument("--profile", help="Profile key for --view statement")
    parser.add_argument("--search", default="", help="Filter anomalies by name or SR No")
    parser.add_argument("--cap", action="store_true", help="Plan: cap allocations to payment total")
    parser.add_argument("--save", action="store_true", help=f"Save artifacts under {ARTIFACTS_DIR}")
    parser.add_argument("--output", type=Path, help="Output JSON file for the selected view")
    parser.add_argument("--json-logs", action="store_true", help="Structured JSON logging")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        json_format=args.json_logs,
        force=True,
    )
    config = load_config()

    payments = load_payments(load_records(args.payments))
    try:
        result = recompute(load_records(args.transactions), payments, args.strategy, config)
    except ReconciliationError as e:
        print(f"❌ {e}")
        sys.exit(1)

    output_data = None
    report = None
    statement = None

    if args.view == "summaries":
        print_summaries(result)
        output_data = result.model_dump(mode="json", by_alias=True)

    elif args.view in ("anomalies", "plan"):
        report = detect_anomalies(result.summaries, payments, config)
        entries = filter_entries(report.entries, args.search)

        if args.view == "anomalies":
            print(f"\nNegative outstanding entries: {len(entries)}")
            for category, count in count_categories(entries).items():
                print(f"  {category}: {count}")
            for e in entries:
                print(f"\n  {e.sr_no}  {e.name}  outstanding {e.outstanding}  excess {e.excess}")
                for reason in e.reasons:
                    print(f"    - {reason}")
            output_data = json.loads(export_anomalies_json(entries))
        else:
            plans = plan_fixes(entries, payments, args.cap)
            print(f"\nPlanned changes (dry run): {len(plans)}")
            for plan in plans:
                print(f"  {plan.payment_doc_id}: {'; '.join(plan.notes)}")
            output_data = [p.model_dump(mode="json") for p in plans]

    else:
        summary = result.summaries.get(args.profile or "")
        if summary is None:
            print(f"❌ Unknown profile: {args.profile!r}")
            print("Available profiles:")
            for key in result.summaries:
                print(f"  {key}")
            sys.exit(1)

        statement = build_statement_sync(
            summary,
            chunk_size=config.statement_chunk_size,
            window_days=config.date_window_days,
        )
        print(f"\n{'Date':<12} {'Debit':>12} {'Credit':>12} {'Balance':>12}  Particulars")
        for line in statement.lines:
            first = line.particulars.splitlines()[0] if line.particulars else ""
            print(f"{line.display_date:<12} {line.debit:>12} {line.credit:>12} {line.balance:>12}  {first}")
        t = statement.totals
        print(f"\nPaid {t.total_paid} (cash {t.total_cash_paid}, RTGS {t.total_rtgs_paid}), "
              f"CD {t.total_cd}, outstanding {t.outstanding}")
        output_data = statement.model_dump(mode="json")

    if args.save:
        refs = save_result(result, ARTIFACTS_DIR, anomalies=report)
        if statement is not None:
            save_statement(statement, ARTIFACTS_DIR, refs)
        print(f"\nSaved artifacts for run {refs.run_id} to {ARTIFACTS_DIR / refs.run_id}")

    if args.output:
        args.output.write_text(json.dumps(output_data, indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"\nResults written to {args.output}")


if __name__ == "__main__":
    main()
