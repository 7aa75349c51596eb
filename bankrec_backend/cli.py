from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .adapters import BankStatementAdapter, LedgerAAdapter
from .engine import list_accounts, list_identifiers, reconcile
from .models import AmountParseMode, ColumnMapping, ReconError, ReconciliationResult
from .outputs import export_filename, now_local, write_recon_xlsx
from .settings import DEFAULT_SETTINGS
from .telemetry import build_run_event, send_run_event
from .templates import JsonFileStore, MappingTemplate, TemplateRepository


def _repo(path: Optional[str]) -> TemplateRepository:
    return TemplateRepository(JsonFileStore(path or DEFAULT_SETTINGS.templates_file))


def parse_account_pairs(pairs: List[str]) -> Dict[str, str]:
    """NAME=ID pairs -> dict; splits on the last '=' so names may contain one"""
    out: Dict[str, str] = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"Expected NAME=ID, got: {pair}")
        name, bank_id = pair.rsplit("=", 1)
        out[name.strip()] = bank_id.strip()
    return out


def print_summary(result: ReconciliationResult) -> None:
    print(f"Reconciling: {result.account} -> {result.bank_identifier}")
    if result.template_name:
        print(f"Template:    {result.template_name}")
    print(f"Batch total: {result.batch_total:,.2f}")
    print(f"Bank total:  {result.bank_total:,.2f}")
    print(f"Difference:  {result.difference:,.2f}  [{result.status.value}]")
    print(f"Matches: {result.total_matches} | "
          f"Missing from bank: {len(result.unmatched_batches)} batches | "
          f"Extra in bank: {len(result.unmatched_bank)} transactions")


def run(args: argparse.Namespace) -> int:
    repo = _repo(args.templates_file)
    mapping = ColumnMapping(
        identifier=args.identifier_col,
        amount=args.amount_col,
        date=args.date_col,
        description=args.description_col,
    )
    account_mapping: Dict[str, str] = {}
    if args.template:
        template = repo.get(args.template)
        # Explicit column flags override the template's binding
        mapping = ColumnMapping(
            identifier=args.identifier_col or template.column_mapping.identifier,
            amount=args.amount_col or template.column_mapping.amount,
            date=args.date_col or template.column_mapping.date,
            description=args.description_col or template.column_mapping.description,
        )
        account_mapping.update(template.account_mapping)
    account_mapping.update(parse_account_pairs(args.map_account))

    ledger_rows = LedgerAAdapter(DEFAULT_SETTINGS.ledger_a_columns).parse_files(args.ledger_a)
    bank_rows = BankStatementAdapter().parse(args.bank)

    try:
        result = reconcile(
            ledger_rows,
            bank_rows,
            mapping,
            account_mapping,
            args.account,
            tolerance=args.tolerance,
            amount_mode=AmountParseMode.STRICT if args.strict else None,
            template_name=args.template,
        )
    except ReconError as e:
        send_run_event(build_run_event(args.account, template_name=args.template, success=False, error=str(e)))
        raise
    send_run_event(build_run_event(args.account, result))

    print_summary(result)

    if args.save_template:
        repo.save(MappingTemplate(name=args.save_template, column_mapping=mapping, account_mapping=account_mapping))
        print(f"[OK] Saved template: {args.save_template}")

    if args.output:
        out_path = Path(args.output)
    else:
        out_dir = Path(DEFAULT_SETTINGS.output_dir)
        out_path = out_dir / export_filename(result.account, now_local())
    out_path.parent.mkdir(parents=True, exist_ok=True)
    write_recon_xlsx(out_path, result)
    print(f"Wrote: {out_path}")
    return 0


def accounts(args: argparse.Namespace) -> int:
    rows = LedgerAAdapter(DEFAULT_SETTINGS.ledger_a_columns).parse_files(args.ledger_a)
    for name in list_accounts(rows):
        print(name)
    return 0


def columns(args: argparse.Namespace) -> int:
    rows, cols = BankStatementAdapter().parse_with_columns(args.bank)
    for c in cols:
        print(c)
    if args.identifier_col:
        print("")
        print(f"Identifiers in '{args.identifier_col}':")
        for ident in list_identifiers(rows, ColumnMapping(identifier=args.identifier_col)):
            print(f"  {ident}")
    return 0


def templates(args: argparse.Namespace) -> int:
    for t in _repo(args.templates_file).list():
        m = t.column_mapping
        print(f"{t.name}: identifier={m.identifier} amount={m.amount} date={m.date} "
              f"description={m.description} accounts={len(t.account_mapping)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="bankrec", description="Reconcile journal batches against a bank statement")
    ap.add_argument("--templates-file", default=None, help="JSON file holding mapping templates")
    sub = ap.add_subparsers(dest="command", required=True)

    r = sub.add_parser("run", help="reconcile one account")
    r.add_argument("--ledger-a", nargs="+", required=True, help="cash receipt journal export(s)")
    r.add_argument("--bank", required=True, help="bank statement (csv/xlsx)")
    r.add_argument("--account", required=True, help="internal Bank Account Description")
    r.add_argument("--map-account", action="append", default=[], metavar="NAME=ID",
                   help="internal account -> bank identifier (repeatable)")
    r.add_argument("--template", help="saved mapping template to use")
    r.add_argument("--identifier-col")
    r.add_argument("--amount-col")
    r.add_argument("--date-col")
    r.add_argument("--description-col")
    r.add_argument("--tolerance", type=float, default=None)
    r.add_argument("--strict", action="store_true", help="reject unparsable amounts instead of using 0")
    r.add_argument("--save-template", metavar="NAME")
    r.add_argument("--output", help="xlsx path (default: output dir + timestamped name)")
    r.set_defaults(func=run)

    a = sub.add_parser("accounts", help="list internal accounts in journal export(s)")
    a.add_argument("--ledger-a", nargs="+", required=True)
    a.set_defaults(func=accounts)

    c = sub.add_parser("columns", help="list bank statement columns")
    c.add_argument("--bank", required=True)
    c.add_argument("--identifier-col")
    c.set_defaults(func=columns)

    t = sub.add_parser("templates", help="list saved mapping templates")
    t.set_defaults(func=templates)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (ReconError, ValueError, OSError) as e:
        print(f"[ERROR] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
