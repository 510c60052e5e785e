"""
Bias Monitoring Runner

Evaluates one hiring process batch from a JSON file:
1. Load and validate configuration
2. Evaluate the batch (metrics, bias score, thresholds, alerts, audit)
3. Optionally replay a report over the audit trail

Usage:
    python run_monitoring.py --batch data/decisions.json --process-type hiring_decision
    python run_monitoring.py --config config.yml --batch data/matches.json \
        --process-type matching --process-id P-42 --report violation_summary --time-range 24h
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from shared.constants import DEFAULT_PATHS, PROCESS_TYPES, REPORT_TYPES, TIME_RANGES
from shared.logging import setup_logger
from monitoring_module.src.config_loader import load_config
from monitoring_module.src.engine import create_monitoring_engine
from monitoring_module.src.report_generator import save_report


class MonitoringRunner:
    """
    Run a single monitoring evaluation from the command line.

    Builds the engine from config, evaluates the batch and prints the
    result as JSON.
    """

    def __init__(self, config_path: str):
        """
        Initialize runner.

        Args:
            config_path: Path to YAML configuration file
        """
        self.config = load_config(config_path)
        self.logger = setup_logger(
            "run_monitoring",
            level=getattr(logging, self.config.log_level.upper(), logging.INFO),
            log_file=self.config.log_file,
        )
        self.logger.info(f"Loaded config from {config_path}")
        self.engine = create_monitoring_engine(self.config)

    @staticmethod
    def load_batch(batch_path: str) -> Dict[str, Any]:
        """Load a batch payload from JSON."""
        path = Path(batch_path)
        if not path.exists():
            raise FileNotFoundError(f"Batch not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    async def run(
        self,
        batch_path: str,
        process_type: str,
        process_id: Optional[str] = None,
        report_type: Optional[str] = None,
        time_range: str = "24h",
    ) -> Dict[str, Any]:
        data = self.load_batch(batch_path)
        process_id = process_id or Path(batch_path).stem
        service = self.engine.service

        self.logger.info("=" * 60)
        self.logger.info(f"MONITORING {process_type} BATCH {process_id}")
        self.logger.info("=" * 60)

        try:
            result = await service.monitor_process(process_id, process_type, data)
            output: Dict[str, Any] = {
                "result": result.to_dict() if result else None,
                "errors": service.event_bus.events("monitoring.error"),
            }

            if report_type:
                report = service.generate_report(report_type, time_range)
                output["report"] = report.to_dict()
                output["report_path"] = save_report(report, self.config.reports_dir)

            return output
        finally:
            await service.event_bus.drain()
            if self.engine.executor is not None:
                self.engine.executor.shutdown(wait=True)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Evaluate a hiring process batch for bias")
    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_PATHS['config'],
        help='Path to config file'
    )
    parser.add_argument(
        '--batch',
        type=str,
        required=True,
        help='Path to JSON batch payload'
    )
    parser.add_argument(
        '--process-type',
        type=str,
        required=True,
        choices=sorted(PROCESS_TYPES),
        help='Process type of the batch'
    )
    parser.add_argument(
        '--process-id',
        type=str,
        help='Process identifier (defaults to the batch file name)'
    )
    parser.add_argument(
        '--report',
        type=str,
        choices=REPORT_TYPES,
        help='Also generate and save this report'
    )
    parser.add_argument(
        '--time-range',
        type=str,
        default='24h',
        choices=list(TIME_RANGES),
        help='Report window'
    )

    args = parser.parse_args()

    runner = MonitoringRunner(args.config)
    output = asyncio.run(runner.run(
        args.batch,
        args.process_type,
        process_id=args.process_id,
        report_type=args.report,
        time_range=args.time_range,
    ))

    print(json.dumps(output, indent=2, default=str))
    if output["result"] is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
