"""
Isolation Level Suite Runner
Runs every scenario under every isolation level and writes the reports
"""

import asyncio
import logging
from typing import List, Optional

from clusterdb.db.cluster import ClusterClient
from clusterdb.db.db_config import ISOLATION_LEVELS, LOG_DIR, SimulationTimings
from clusterdb.simulation.isolation_scenarios import IsolationSimulation, SimulationRun
from clusterdb.utils.logger import SimulationReport

logger = logging.getLogger(__name__)

SCENARIOS = ['case1', 'case2', 'case3']


class ConcurrencyTestSuite:
    def __init__(self, cluster: ClusterClient, timings: Optional[SimulationTimings] = None,
                 log_dir: str = LOG_DIR, pause: float = 2.0):
        self.simulation = IsolationSimulation(cluster, timings)
        self.report = SimulationReport(log_dir)
        self.pause = pause

    async def run_all_tests(self, isolation_levels: Optional[List[str]] = None,
                            scenarios: Optional[List[str]] = None, save: bool = True) -> List[SimulationRun]:
        """Run scenarios one after another for each isolation level"""
        runs = []
        for isolation_level in isolation_levels or ISOLATION_LEVELS:
            logger.info(f"TESTING ISOLATION LEVEL: {isolation_level}")
            for scenario in scenarios or SCENARIOS:
                run = await self.simulation.run_scenario(scenario, isolation_level)
                self.report.add_run(run, save=save)
                runs.append(run)
                for line in run.lines():
                    logger.info(line)
                # let locks from the previous run drain
                await asyncio.sleep(self.pause)

        if save and runs:
            path = self.report.save_summary()
            logger.info(f"Report saved to: {path}")
        return runs
