"""
Logging helpers for the cluster.

configure_logging() sets up the root handler, log_event() emits structured
cluster events, and SimulationReport keeps isolation simulation runs and
produces the comparison reports across isolation levels.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


def configure_logging(level: str = 'INFO'):
    """Configure root logging once for CLI and script use."""
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields):
    """
    Emit one structured event.

    The message reads `event key=value ...`; the same data is attached to the
    record as `event` and `fields` so handlers can index it.
    """
    rendered = ' '.join(f"{key}={value}" for key, value in fields.items())
    logger.log(level, f"{event} {rendered}".rstrip(), extra={'event': event, 'fields': fields})


class SimulationReport:
    def __init__(self, log_dir: str = "logs"):
        self.log_dir = Path(log_dir)
        self.runs: List[Dict[str, Any]] = []

    def add_run(self, run, save: bool = True) -> Dict[str, Any]:
        """Record a SimulationRun and optionally persist it as JSON"""
        record = {
            'scenario': run.scenario,
            'isolation_level': run.isolation_level,
            'started_at': run.started_at.isoformat(),
            'finished_at': run.finished_at.isoformat() if run.finished_at else None,
            'duration': run.duration,
            'events': [event.as_dict() for event in run.events],
            'errors': sum(1 for event in run.events if event.kind == 'error'),
            'commits': sum(1 for event in run.events if event.kind == 'commit'),
            'lines': run.lines(),
        }
        self.runs.append(record)
        if save:
            self._save_run(record)
        return record

    def _save_run(self, record: Dict[str, Any]) -> Path:
        """Save a run to a JSON file"""
        level = record['isolation_level'].lower().replace(' ', '_')
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
        self.log_dir.mkdir(parents=True, exist_ok=True)
        filename = self.log_dir / f"{record['scenario']}_{level}_{stamp}.json"
        with open(filename, 'w') as f:
            json.dump(record, f, indent=2, default=str)
        return filename

    def summary_frame(self) -> pd.DataFrame:
        """One row per run: scenario, isolation level, duration, commit and error counts"""
        columns = ['scenario', 'isolation_level', 'duration', 'commits', 'errors']
        if not self.runs:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame([{key: run[key] for key in columns} for run in self.runs])

    def comparison_frame(self) -> pd.DataFrame:
        """Pivot of run durations, scenarios as rows and isolation levels as columns"""
        frame = self.summary_frame()
        if frame.empty:
            return frame
        return frame.pivot_table(index='scenario', columns='isolation_level',
                                 values='duration', aggfunc='mean').round(3)

    def save_summary(self, filename: Optional[str] = None) -> Path:
        """Write the narrative of every run plus the comparison table"""
        if filename is None:
            filename = f"isolation_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.txt"
        self.log_dir.mkdir(parents=True, exist_ok=True)
        path = self.log_dir / filename
        with open(path, 'w') as f:
            f.write("ISOLATION LEVEL REPORT\n")
            f.write("=" * 50 + "\n")
            for run in self.runs:
                f.write(f"\n{run['scenario']} | {run['isolation_level']} | {run['duration']}s\n")
                f.write("-" * 50 + "\n")
                for line in run['lines']:
                    f.write(line + "\n")
            f.write("\nSUMMARY\n")
            f.write(self.summary_frame().to_string(index=False) + "\n")
            comparison = self.comparison_frame()
            if not comparison.empty:
                f.write("\nDURATION BY ISOLATION LEVEL\n")
                f.write(comparison.to_string() + "\n")
        return path
