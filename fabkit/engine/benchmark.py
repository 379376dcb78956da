"""
Benchmark Runner

Fans a fixed number of load jobs out over a thread pool. Each job issues
`entries_per_job` invokes with random keys and values 1..N and counts its
own failures; results are aggregated only after every job has finished.
There is no backpressure, no retry and no cancellation: a hung invoke
blocks the whole run.
"""

import logging
import random
import string
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Optional

from ..core.errors import ValidationError
from ..core.types import BenchmarkReport, ProcessResult

KEY_ALPHABET = string.ascii_uppercase + string.digits
KEY_LENGTH = 14

# invoke_fn(key, value) -> ProcessResult, or raises
InvokeFn = Callable[[str, str], Optional[ProcessResult]]


def random_key(rng: random.Random, length: int = KEY_LENGTH) -> str:
    """Random key over A-Z0-9"""
    return ''.join(rng.choice(KEY_ALPHABET) for _ in range(length))


def _positive_int(label: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{label} must be a positive integer, got {value!r}")
    return value


class BenchmarkRunner:
    """Parallel ledger load generator"""

    def __init__(self, max_workers: Optional[int] = None, key_length: int = KEY_LENGTH,
                 rng_factory: Callable[[], random.Random] = random.Random):
        self.max_workers = max_workers
        self.key_length = key_length
        self.rng_factory = rng_factory
        self.logger = logging.getLogger(__name__)

    def _job(self, job: int, entries: int, invoke_fn: InvokeFn) -> int:
        # Each worker owns its RNG; nothing mutable is shared between jobs
        rng = self.rng_factory()
        errors = 0
        for value in range(1, entries + 1):
            key = random_key(rng, self.key_length)
            try:
                result = invoke_fn(key, str(value))
            except Exception as e:
                self.logger.error(f"Job {job}: invoke {key}={value} raised {e}")
                errors += 1
                continue
            if result is not None and not result.ok:
                self.logger.debug(f"Job {job}: invoke {key}={value} failed: {result.output}")
                errors += 1
        return errors

    def run(self, job_count: int, entries_per_job: int, invoke_fn: InvokeFn) -> BenchmarkReport:
        """
        Run the load.

        Args:
            job_count: Number of parallel jobs
            entries_per_job: Invokes issued by each job
            invoke_fn: Called as invoke_fn(key, value) for every entry

        Returns:
            BenchmarkReport with issued entries, elapsed time and the
            error count of every job (numbered from 1)
        """
        job_count = _positive_int("Number of jobs", job_count)
        entries_per_job = _positive_int("Number of entries per job", entries_per_job)
        self.logger.info(f"Running in parallel: {job_count} jobs, {entries_per_job} entries each")

        start_time = time.perf_counter()
        with ThreadPoolExecutor(max_workers=self.max_workers or job_count) as executor:
            futures = {
                job: executor.submit(self._job, job, entries_per_job, invoke_fn)
                for job in range(1, job_count + 1)
            }
            per_job_errors: Dict[int, int] = {job: f.result() for job, f in futures.items()}
        elapsed = time.perf_counter() - start_time

        report = BenchmarkReport(
            job_count=job_count,
            entries_per_job=entries_per_job,
            total_entries=job_count * entries_per_job,
            elapsed=elapsed,
            per_job_errors=per_job_errors,
        )
        self.logger.info(f"{report.total_entries} entries issued in {elapsed:.2f}s, "
                         f"{report.error_count} failed")
        return report
