"""
Health Signals: analyse a JSON export
=====================================
Runs one full analysis pass over an exported record file and prints the
result as JSON.

Usage:
    python analyze_export.py export.json                  # full result
    python analyze_export.py export.json --tz Europe/Oslo # override user.tz
    python analyze_export.py export.json --allow-partial  # analyse valid records only
    python analyze_export.py export.json --insights-payload -o payload.json

Exit codes: 0 success/degraded, 1 analysis failed, 2 unreadable payload.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("analyze_export")

from pipeline.insights_payload import build_insights_payload
from routes.helpers import _to_jsonable
from settings import AnalysisConfig
from signal_engine import HealthSignalEngine


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Analyse a health record export")
    parser.add_argument("input", help="Path to a JSON export ({user, records} or a bare records array)")
    parser.add_argument("--tz", help="IANA time zone for day keys (overrides user.tz)")
    parser.add_argument("-o", "--output", help="Write JSON here instead of stdout")
    parser.add_argument("--allow-partial", action="store_true",
                        help="Analyse the valid records even when some fail validation")
    parser.add_argument("--insights-payload", action="store_true",
                        help="Emit the insight-generator day slice instead of the full result")
    parser.add_argument("--day-key", help="Last day of the insights slice (default: latest day)")
    args = parser.parse_args(argv)

    try:
        text = Path(args.input).read_text(encoding="utf-8")
    except OSError as e:
        log.error("Cannot read %s: %s", args.input, e)
        return 2

    config = AnalysisConfig.from_env()
    if args.allow_partial:
        config = config.with_overrides(fail_on_validation_errors=False)

    result = HealthSignalEngine(config).analyze(text, time_zone=args.tz)
    status = result["analysis_status"]
    for err in result["errors"]:
        log.error("  %s", err)

    if "invalid_payload" in result["degraded_reasons"]:
        return 2

    if args.insights_payload and status != "failed":
        out = build_insights_payload(result["days"], time_zone=result["time_zone"],
                                     day_key=args.day_key, config=config)
    else:
        out = result

    rendered = json.dumps(_to_jsonable(out), indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(rendered + "\n", encoding="utf-8")
        log.info("Wrote %s", args.output)
    else:
        sys.stdout.write(rendered + "\n")

    log.info("Analysis status: %s", status)
    return 1 if status == "failed" else 0


if __name__ == "__main__":
    sys.exit(main())
