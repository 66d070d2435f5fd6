"""
Periodic match refresh.

A pass runs the embedding backfill, the job shortlist refresh and then
the candidate match refresh. A step that fails as a whole is logged and
the pass carries on with the next one; the loop keeps running until it
is cancelled or reaches ``max_passes``.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from talentmatch.data.models import RefreshReport
from talentmatch.utils.config import get_settings
from talentmatch.utils.exceptions import TalentMatchError
from talentmatch.utils.logger import audit_log, get_logger

from .candidate_matches import CandidateMatchService, get_candidate_match_service
from .job_matches import JobMatchService, get_job_match_service
from .refresh import CandidateEmbeddingRefresher, get_candidate_refresher

logger = get_logger(__name__)

ReportCallback = Callable[[str, RefreshReport], None]


@dataclass
class PassResult:
    """Reports of the steps that ran and errors of those that did not."""

    reports: list[tuple[str, RefreshReport]] = field(default_factory=list)
    errors: list[tuple[str, TalentMatchError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and all(r.failed == 0 for _, r in self.reports)


class MatchRefreshScheduler:
    """Runs refresh passes at a fixed interval."""

    def __init__(
        self,
        refresher: Optional[CandidateEmbeddingRefresher] = None,
        job_service: Optional[JobMatchService] = None,
        candidate_service: Optional[CandidateMatchService] = None,
        interval: Optional[float] = None,
        skip_embeddings: bool = False,
        skip_candidate_matches: bool = False,
        on_report: Optional[ReportCallback] = None,
    ):
        self._refresher = refresher
        self._job_service = job_service
        self._candidate_service = candidate_service
        self.interval = (
            interval if interval is not None else get_settings().matching.refresh_interval_seconds
        )
        self.skip_embeddings = skip_embeddings
        self.skip_candidate_matches = skip_candidate_matches
        self.on_report = on_report

    @property
    def refresher(self) -> CandidateEmbeddingRefresher:
        if self._refresher is None:
            self._refresher = get_candidate_refresher()
        return self._refresher

    @property
    def job_service(self) -> JobMatchService:
        if self._job_service is None:
            self._job_service = get_job_match_service()
        return self._job_service

    @property
    def candidate_service(self) -> CandidateMatchService:
        if self._candidate_service is None:
            self._candidate_service = get_candidate_match_service()
        return self._candidate_service

    def _steps(self) -> list[tuple[str, Callable[[], Awaitable[RefreshReport]]]]:
        steps = []
        if not self.skip_embeddings:
            steps.append(
                ("candidate_embeddings", lambda: self.refresher.refresh_all(only_stale=True))
            )
        steps.append(("job_matches", self.job_service.refresh_all_job_matches))
        if not self.skip_candidate_matches:
            steps.append(("candidate_matches", self.candidate_service.refresh_all_candidate_matches))
        return steps

    async def run_pass(self) -> PassResult:
        """Run every step once; never raises ``TalentMatchError``."""
        result = PassResult()
        for name, step in self._steps():
            try:
                report = await step()
            except TalentMatchError as e:
                logger.error(f"Refresh step {name} failed: [{e.error_code}] {e.message}")
                result.errors.append((name, e))
                continue

            result.reports.append((name, report))
            if self.on_report is not None:
                self.on_report(name, report)
        return result

    async def run(self, max_passes: Optional[int] = None) -> bool:
        """
        Run passes until cancelled, or until ``max_passes`` have run.

        Returns:
            True when every pass finished without failures.
        """
        passes = 0
        all_ok = True
        while True:
            started = time.monotonic()
            result = await self.run_pass()
            passes += 1
            all_ok = all_ok and result.ok

            if not result.ok:
                audit_log(
                    "refresh_pass_failed",
                    {
                        "pass": passes,
                        "failed_steps": [name for name, _ in result.errors],
                        "failed_records": sum(r.failed for _, r in result.reports),
                    },
                    audit_type="BATCH",
                )

            if max_passes is not None and passes >= max_passes:
                return all_ok

            remaining = self.interval - (time.monotonic() - started)
            if remaining > 0:
                logger.info(f"Next refresh pass in {remaining:.0f}s")
                await asyncio.sleep(remaining)
