"""
Tests for talentmatch.core.matching.scheduler: refresh passes over stub
services that return canned reports or raise.
"""

from types import SimpleNamespace

import pytest

from talentmatch.core.matching import MatchRefreshScheduler
from talentmatch.data.models import RefreshOutcome, RefreshReport
from talentmatch.utils.exceptions import IndexUnavailable


class StubStep:
    """Refresh operation returning a report, or raising the next queued error."""

    def __init__(self, job, errors=(), failed_records=0):
        self.job = job
        self.errors = list(errors)
        self.failed_records = failed_records
        self.calls = []

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        error = self.errors.pop(0) if self.errors else None
        if error is not None:
            raise error
        outcomes = [RefreshOutcome(record_id="r1", success=True)]
        outcomes += [
            RefreshOutcome(record_id=f"bad{i}", success=False, error_kind="InvalidInput")
            for i in range(self.failed_records)
        ]
        return RefreshReport(job=self.job, model_version="m1", outcomes=outcomes)


@pytest.fixture
def steps():
    return SimpleNamespace(
        embeddings=StubStep("candidate_embeddings"),
        jobs=StubStep("job_matches"),
        candidates=StubStep("candidate_matches"),
    )


@pytest.fixture
def make_scheduler(steps):
    def _factory(**kwargs):
        kwargs.setdefault("interval", 0)
        return MatchRefreshScheduler(
            refresher=SimpleNamespace(refresh_all=steps.embeddings),
            job_service=SimpleNamespace(refresh_all_job_matches=steps.jobs),
            candidate_service=SimpleNamespace(refresh_all_candidate_matches=steps.candidates),
            **kwargs,
        )

    return _factory


# ── run_pass ────────────────────────────────────────────────────────────────


class TestRunPass:
    @pytest.mark.asyncio
    async def test_runs_steps_in_order(self, make_scheduler, steps):
        result = await make_scheduler().run_pass()

        assert [name for name, _ in result.reports] == [
            "candidate_embeddings",
            "job_matches",
            "candidate_matches",
        ]
        assert steps.embeddings.calls == [{"only_stale": True}]
        assert result.ok

    @pytest.mark.asyncio
    async def test_failed_step_does_not_stop_the_pass(self, make_scheduler, steps):
        steps.embeddings.errors = [IndexUnavailable("list candidates failed")]

        result = await make_scheduler().run_pass()

        assert [name for name, _ in result.errors] == ["candidate_embeddings"]
        assert [name for name, _ in result.reports] == ["job_matches", "candidate_matches"]
        assert not result.ok

    @pytest.mark.asyncio
    async def test_failed_records_mark_pass_not_ok(self, make_scheduler, steps):
        steps.jobs.failed_records = 2
        result = await make_scheduler().run_pass()
        assert result.errors == []
        assert not result.ok

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, make_scheduler, steps):
        steps.jobs.errors = [RuntimeError("bug")]
        with pytest.raises(RuntimeError):
            await make_scheduler().run_pass()

    @pytest.mark.asyncio
    async def test_skip_flags(self, make_scheduler, steps):
        scheduler = make_scheduler(skip_embeddings=True, skip_candidate_matches=True)
        result = await scheduler.run_pass()

        assert [name for name, _ in result.reports] == ["job_matches"]
        assert steps.embeddings.calls == []
        assert steps.candidates.calls == []

    @pytest.mark.asyncio
    async def test_on_report_called_per_finished_step(self, make_scheduler, steps):
        seen = []
        steps.candidates.errors = [IndexUnavailable("list candidates failed")]
        scheduler = make_scheduler(on_report=lambda name, report: seen.append((name, report.job)))

        await scheduler.run_pass()

        assert seen == [
            ("candidate_embeddings", "candidate_embeddings"),
            ("job_matches", "job_matches"),
        ]


# ── run ─────────────────────────────────────────────────────────────────────


class TestRun:
    @pytest.mark.asyncio
    async def test_loop_survives_a_failed_pass(self, make_scheduler, steps):
        steps.jobs.errors = [IndexUnavailable("job_postings vector search failed")]

        assert await make_scheduler().run(max_passes=3) is False
        assert len(steps.jobs.calls) == 3
        assert len(steps.candidates.calls) == 3

    @pytest.mark.asyncio
    async def test_clean_passes(self, make_scheduler, steps):
        assert await make_scheduler().run(max_passes=2) is True
        assert len(steps.embeddings.calls) == 2

    def test_interval_defaults_to_settings(self, steps):
        scheduler = MatchRefreshScheduler(
            refresher=SimpleNamespace(refresh_all=steps.embeddings),
            job_service=SimpleNamespace(refresh_all_job_matches=steps.jobs),
            candidate_service=SimpleNamespace(refresh_all_candidate_matches=steps.candidates),
        )
        assert scheduler.interval == 300.0
