#!/usr/bin/env python3
"""
Score a cohort of students from a JSON file.

============================================================
USAGE
============================================================
    python scripts/score_cohort.py cohort.json
    python scripts/score_cohort.py cohort.json --database-url sqlite:///risk.db
    python scripts/score_cohort.py cohort.json --output results.json

The input file holds a JSON list of objects shaped like the
POST /risk-assessments request body.

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import TypeAdapter

from dashboard.main import setup_logging
from dashboard.schemas import RiskAssessmentCreate
from risk_engine.engine import BatchItemResult, create_risk_engine

logger = logging.getLogger(__name__)


def load_cohort(path: Path) -> List[RiskAssessmentCreate]:
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return TypeAdapter(List[RiskAssessmentCreate]).validate_python(raw)


def summarize(results: List[BatchItemResult]) -> Dict[str, Any]:
    levels: Dict[str, int] = {}
    alerts = 0
    for r in results:
        if r.assessment is None:
            continue
        level = r.assessment.risk_level.value
        levels[level] = levels.get(level, 0) + 1
        alerts += int(r.assessment.alert_triggered)

    return {
        "scored": sum(1 for r in results if r.ok),
        "failed": sum(1 for r in results if not r.ok),
        "levels": levels,
        "alerts_triggered": alerts,
    }


async def run(path: Path, database_url: Optional[str], output: Optional[Path]) -> int:
    cohort = load_cohort(path)
    engine = create_risk_engine(database_url=database_url)

    try:
        results = await engine.assess_batch([s.to_signals() for s in cohort])
    finally:
        await engine.close()

    for r in results:
        if r.ok:
            a = r.assessment
            drivers = ", ".join(f.factor_name for f in a.factors) or "-"
            print(
                f"{a.student_id:<12} {a.risk_level.value:<9} P={a.dropout_probability:.3f} "
                f"conf={a.confidence:.0f} drivers: {drivers}"
            )
        else:
            print(f"{r.student_id:<12} ERROR     {r.error.message}")

    summary = summarize(results)
    print(json.dumps(summary, indent=2))

    if output:
        payload = [
            r.assessment.to_dict() if r.ok else {"student_id": r.student_id, "error": r.error.to_dict()}
            for r in results
        ]
        with open(output, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        logger.info(f"Wrote {len(payload)} results to {output}")

    return 0 if summary["failed"] == 0 else 2


def main() -> int:
    parser = argparse.ArgumentParser(description="Score a student cohort")
    parser.add_argument("cohort", type=Path, help="JSON file with a list of students")
    parser.add_argument("--database-url", default=None, help="Persist results to this database")
    parser.add_argument("--output", type=Path, default=None, help="Write full results as JSON")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    args = parser.parse_args()

    setup_logging(args.log_level)
    return asyncio.run(run(args.cohort, args.database_url, args.output))


if __name__ == "__main__":
    sys.exit(main())
