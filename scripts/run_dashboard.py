#!/usr/bin/env python3
"""
Risk Engine API Server Runner.

============================================================
USAGE
============================================================
    python scripts/run_dashboard.py
    python scripts/run_dashboard.py --port 8080
    python scripts/run_dashboard.py --host 0.0.0.0 --port 8080
    python scripts/run_dashboard.py --database-url sqlite:///risk.db

============================================================
ENDPOINTS
============================================================
    GET   /                                       - Health check
    POST  /risk-assessments                       - Score one student
    POST  /risk-assessments/batch                 - Score a cohort
    GET   /risk-assessments                       - List assessments
    GET   /risk-assessments/statistics            - Alert counts
    GET   /risk-assessments/{id}                  - One assessment
    POST  /risk-assessments/{id}/acknowledge      - Acknowledge alert
    POST  /risk-assessments/{id}/resolve          - Resolve alert
    GET   /risk-assessments/{id}/recommendations  - Proposals
    GET   /risk-assessments/{id}/interventions    - Recorded actions
    POST  /risk-assessments/{id}/interventions    - Record action
    PATCH /interventions/{id}                     - Status change

============================================================
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import uvicorn

from dashboard.main import create_app, setup_logging
from risk_engine.engine import create_risk_engine

logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run the risk engine API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (default: RISK_ENGINE_DATABASE_URL / DATABASE_URL, else in-memory)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    setup_logging(args.log_level)

    engine = create_risk_engine(database_url=args.database_url)
    logger.info(f"Starting risk engine API on {args.host}:{args.port}")
    uvicorn.run(create_app(engine), host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
