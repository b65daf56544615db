#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path


def _ensure_src_on_path() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src = repo_root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


def _read_text(path: Path) -> str:
    if not path.exists():
        raise SystemExit(f"File not found: {path}")
    return path.read_text(encoding="utf-8", errors="replace")


def _collect_files(paths: list[str]) -> list[Path]:
    out: list[Path] = []
    for raw in paths:
        p = Path(raw)
        if p.is_dir():
            out.extend(sorted(f for f in p.glob("*.txt") if f.is_file()))
        else:
            out.append(p)
    return out


def main(argv: list[str] | None = None) -> int:
    _ensure_src_on_path()

    from card_usage_aggregator.aggregator import sort_details
    from card_usage_aggregator.extract import extract_record
    from card_usage_aggregator.models import AggregateResult

    p = argparse.ArgumentParser(
        prog="parse_mail_text_snapshot",
        description=(
            "Run the notification extractor over saved message text (data/debug/*.txt, or bodies copied\n"
            "out of Gmail) and print the aggregate as JSON. Each file is one opened item.\n"
            "Intended for debugging extraction regressions offline (no Playwright, no Gmail session)."
        ),
    )
    p.add_argument("paths", nargs="+", help="Text files, or directories of *.txt files")
    p.add_argument("--out", default="", help="Optional output JSON path (otherwise prints to stdout)")
    args = p.parse_args(argv)

    files = _collect_files(args.paths)
    if not files:
        raise SystemExit("No text files found.")

    details = []
    per_file = []
    for f in files:
        rec = extract_record(_read_text(f))
        per_file.append({"file": str(f), "record": rec.model_dump() if rec else None})
        if rec is not None:
            details.append(rec)

    result = AggregateResult(
        total_amount=sum(r.amount for r in details),
        count=len(details),
        details=sort_details(details),
    )
    payload = {"files": per_file, "data": result.to_wire()}
    out_json = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.out:
        Path(args.out).write_text(out_json, encoding="utf-8")
    else:
        print(out_json)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
