"""Replay a recorded metrics timeline through the canary controller.

Usage:
  python -m canary_rollout.apps.replay_cli run --config settings.yaml --metrics metrics.csv
  python -m canary_rollout.apps.replay_cli run --config settings.yaml --metrics metrics.csv --output summary.json

The controller clock follows the `timestamp` column, so increment intervals
are measured in recorded time rather than wall time.
"""
from __future__ import annotations
import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from dotenv import load_dotenv
from loguru import logger

from canary_rollout.core.config import Settings, load_settings
from canary_rollout.core.custom_types import HealthMetrics, HealthStatus, TrafficStatus
from canary_rollout.deployment.canary import CanaryController

METRIC_COLUMNS = ['error_rate', 'latency_p95', 'latency_p99', 'latency_avg', 'success_rate']
COUNT_COLUMNS = ['request_count', 'error_count']


def setup_logging(log_level: str, log_file: str = "canary_replay.log"):
    """Sets up basic logging."""
    logger.add(
        log_file,
        level=log_level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} - {level} - {message}",
        rotation="10 MB",
        mode="w",
    )
    logger.info(f"Logging level set to {log_level.upper()}")


def _to_epoch_ms(series: pd.Series) -> pd.Series:
    if pd.api.types.is_numeric_dtype(series):
        return series.astype('int64')
    ts = pd.to_datetime(series, utc=True)
    return (ts - pd.Timestamp(0, tz='UTC')) // pd.Timedelta(milliseconds=1)


def load_metrics_csv(path: str | Path) -> List[HealthMetrics]:
    """Read a metrics timeline, ordered by timestamp.

    Missing metric columns or NaN cells become None (not evaluated).
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Metrics file not found: {path}")
    df = pd.read_csv(path)
    if 'timestamp' not in df.columns:
        raise ValueError(f"Metrics file {path} has no 'timestamp' column")
    df['timestamp'] = _to_epoch_ms(df['timestamp'])
    df = df.sort_values('timestamp', kind='stable').reset_index(drop=True)

    samples: List[HealthMetrics] = []
    for row in df.to_dict(orient='records'):
        values: Dict[str, Any] = {}
        for col in METRIC_COLUMNS:
            v = row.get(col)
            values[col] = None if v is None or pd.isna(v) else float(v)
        for col in COUNT_COLUMNS:
            v = row.get(col)
            values[col] = 0 if v is None or pd.isna(v) else int(v)
        samples.append(HealthMetrics(timestamp_ms=int(row['timestamp']), **values))
    logger.info(f"Loaded {len(samples)} metric samples from {path}")
    return samples


class _ReplayClock:
    def __init__(self, start_ms: int):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now


def replay(settings: Settings, samples: List[HealthMetrics]) -> Dict[str, Any]:
    """Drive one canary through `samples` and return its final summary."""
    if not samples:
        raise ValueError("No metric samples to replay")
    dep = settings.deployment
    cfg = settings.canary
    clock = _ReplayClock(samples[0].timestamp_ms)
    ctrl = CanaryController(clock=clock)
    ctrl.start_canary(dep.deployment_id, dep.blue_version, dep.green_version, cfg)

    steps = 0
    for sample in samples:
        clock.now = sample.timestamp_ms
        state = ctrl.update_metrics(dep.deployment_id, sample)
        if state.should_rollback:
            ctrl.rollback(dep.deployment_id, state.rollback_reason or 'Health threshold violations')
            break
        # Hold while degraded; only advance on a clean sample
        if state.status == HealthStatus.HEALTHY and ctrl.is_ready_for_progression(dep.deployment_id):
            before = state.traffic_state.current_percentage
            ctrl.advance_traffic(dep.deployment_id)
            if ctrl.get_state(dep.deployment_id).traffic_state.current_percentage != before:
                steps += 1

    state = ctrl.get_state(dep.deployment_id)
    if (state.traffic_state.status != TrafficStatus.ROLLED_BACK
            and cfg.max_percentage == 100
            and state.traffic_state.current_percentage == 100
            and state.status == HealthStatus.HEALTHY
            and not state.should_rollback):
        ctrl.complete(dep.deployment_id)

    summary = ctrl.get_summary(dep.deployment_id)
    summary['steps'] = steps
    summary['samples'] = len(samples)
    metrics: Optional[HealthMetrics] = summary['metrics']
    summary['metrics'] = metrics.to_dict() if metrics is not None else None
    logger.info(f"Replay finished: traffic={summary['current_traffic']}% status={summary['status']} "
                f"health={summary['health_status']}")
    return summary


def handle_run(args, settings: Settings) -> Dict[str, Any]:
    samples = load_metrics_csv(args.metrics)
    summary = replay(settings, samples)
    text = json.dumps(summary, indent=2)
    print(text)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding='utf-8')
        logger.info(f"Summary written to {out}")
    return summary


def create_parser() -> argparse.ArgumentParser:
    """Creates the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Canary Rollout metrics replay",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Available sub-commands")

    parser_run = subparsers.add_parser("run", help="Replay a metrics CSV through one canary deployment.")
    parser_run.add_argument("--config", type=str, default="settings.yaml", help="Path to the configuration file.")
    parser_run.add_argument("--metrics", type=str, required=True, help="CSV file with a 'timestamp' column.")
    parser_run.add_argument("--output", type=str, default=None, help="Optional path for the JSON summary.")
    parser_run.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    parser_run.set_defaults(func=handle_run)
    return parser


def main(argv: List[str] = None) -> None:
    """Main CLI entrypoint."""
    parser = create_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    settings = load_settings(args.config)

    # CLI > config > default
    if args.log_level:
        log_level = args.log_level
    elif settings.logging and settings.logging.level:
        log_level = settings.logging.level
    else:
        log_level = "INFO"
    setup_logging(log_level)

    args.func(args, settings)


if __name__ == '__main__':
    main()
