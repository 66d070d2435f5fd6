"""
Tests for talentmatch.core.matching.job_matches: stored shortlists per
job posting.
"""

import pytest
from bson import ObjectId

from talentmatch.core.matching import JobMatchService
from talentmatch.data.models import JobPosting
from talentmatch.utils.constants import MatchStatus
from talentmatch.utils.exceptions import InvalidInput, RecordNotFound


@pytest.fixture
def service(matcher, job_repository, match_repository):
    return JobMatchService(
        matcher=matcher,
        job_repository=job_repository,
        match_repository=match_repository,
        concurrency=2,
        max_stored_matches=20,
    )


@pytest.fixture
def devops_job(job_repository):
    return job_repository.add(
        JobPosting(
            title="DevOps Engineer",
            description="Looking for a DevOps developer",
            skills=["Kubernetes"],
            exp_req=5,
            role="DevOps",
        )
    )


def stored_ids(entries):
    return [str(e.candidate_id) for e in entries]


# ── refresh_job_matches ─────────────────────────────────────────────────────


class TestRefreshJobMatches:
    @pytest.mark.asyncio
    async def test_unknown_job(self, service):
        with pytest.raises(RecordNotFound):
            await service.refresh_job_matches(str(ObjectId()))

    @pytest.mark.asyncio
    async def test_embeds_and_persists_job_vector(self, service, devops_job, devops_scenario, job_repository, fake_embedder):
        stored = await service.refresh_job_matches(str(devops_job.id))

        assert devops_job.vector_model == fake_embedder.model_version
        assert job_repository.vector_writes == 1
        assert stored.job_id == devops_job.id
        assert len(stored.matches) == 3
        assert all(e.status == MatchStatus.PENDING for e in stored.matches)

    @pytest.mark.asyncio
    async def test_entries_best_first_without_unembedded(self, service, devops_job, devops_scenario):
        stored = await service.refresh_job_matches(str(devops_job.id))

        scores = [e.match_score for e in stored.matches]
        assert scores == sorted(scores, reverse=True)
        assert str(devops_scenario["D"]["_id"]) not in stored_ids(stored.matches)

    @pytest.mark.asyncio
    async def test_reuses_current_job_vector(self, service, devops_job, devops_scenario, job_repository, fake_embedder):
        await service.refresh_job_matches(str(devops_job.id))
        calls = fake_embedder.calls

        await service.refresh_job_matches(str(devops_job.id))

        assert fake_embedder.calls == calls
        assert job_repository.vector_writes == 1

    @pytest.mark.asyncio
    async def test_stale_job_vector_is_replaced(self, service, devops_job, devops_scenario, job_repository, fake_embedder):
        devops_job.vector = [1.0] + [0.0] * (fake_embedder.dimension - 1)
        devops_job.vector_model = "old-model@v0"

        await service.refresh_job_matches(str(devops_job.id))

        assert devops_job.vector_model == fake_embedder.model_version
        assert job_repository.vector_writes == 1

    @pytest.mark.asyncio
    async def test_filters_applied(self, service, devops_job, devops_scenario):
        stored = await service.refresh_job_matches(str(devops_job.id), filters={"min_experience": 5})
        assert set(stored_ids(stored.matches)) == {
            str(devops_scenario["A"]["_id"]),
            str(devops_scenario["C"]["_id"]),
        }

    @pytest.mark.asyncio
    async def test_stored_matches_capped(self, matcher, job_repository, match_repository, devops_job, devops_scenario):
        service = JobMatchService(
            matcher=matcher,
            job_repository=job_repository,
            match_repository=match_repository,
            max_stored_matches=2,
        )
        stored = await service.refresh_job_matches(str(devops_job.id))
        assert len(stored.matches) == 2

    @pytest.mark.asyncio
    async def test_status_preserved_across_refresh(self, service, devops_job, devops_scenario):
        job_id = str(devops_job.id)
        first = await service.refresh_job_matches(job_id)
        applied_id = str(first.matches[0].candidate_id)
        await service.mark_candidate_applied(job_id, applied_id)

        refreshed = await service.refresh_job_matches(job_id)

        assert refreshed.entry_for(applied_id).status == MatchStatus.APPLIED
        others = [e for e in refreshed.matches if str(e.candidate_id) != applied_id]
        assert others and all(e.status == MatchStatus.PENDING for e in others)


# ── refresh_all_job_matches ─────────────────────────────────────────────────


class TestRefreshAllJobMatches:
    @pytest.mark.asyncio
    async def test_failure_isolated_per_job(self, service, job_repository, match_repository, devops_job, devops_scenario):
        frontend_job = job_repository.add(
            JobPosting(title="Frontend Developer", description="Builds web interfaces", skills=["Frontend"])
        )
        match_repository.fail_for.add(str(frontend_job.id))

        report = await service.refresh_all_job_matches()

        assert report.job == "job_matches"
        assert report.total == 2
        assert report.succeeded == 1
        assert report.failures[0].record_id == str(frontend_job.id)
        assert report.failures[0].error_kind == "IndexUnavailable"
        assert await match_repository.get_by_job_async(devops_job.id) is not None

    @pytest.mark.asyncio
    async def test_no_jobs(self, service):
        report = await service.refresh_all_job_matches()
        assert report.total == 0


# ── mark_candidate_applied / get_job_matches ────────────────────────────────


class TestStatusUpdates:
    @pytest.mark.asyncio
    async def test_mark_applied_without_stored_matches(self, service, devops_job):
        with pytest.raises(RecordNotFound):
            await service.mark_candidate_applied(str(devops_job.id), str(ObjectId()))

    @pytest.mark.asyncio
    async def test_mark_applied_for_unlisted_candidate(self, service, devops_job, devops_scenario):
        await service.refresh_job_matches(str(devops_job.id))
        with pytest.raises(RecordNotFound):
            await service.mark_candidate_applied(str(devops_job.id), str(devops_scenario["D"]["_id"]))

    @pytest.mark.asyncio
    async def test_get_job_matches_by_status(self, service, devops_job, devops_scenario):
        job_id = str(devops_job.id)
        stored = await service.refresh_job_matches(job_id)
        applied_id = str(stored.matches[1].candidate_id)
        await service.mark_candidate_applied(job_id, applied_id)

        assert stored_ids(await service.get_job_matches(job_id, status="applied")) == [applied_id]
        assert len(await service.get_job_matches(job_id, status=MatchStatus.PENDING)) == 2
        assert len(await service.get_job_matches(job_id)) == 3

    @pytest.mark.asyncio
    async def test_get_job_matches_unknown_job(self, service):
        assert await service.get_job_matches(str(ObjectId())) == []

    @pytest.mark.asyncio
    async def test_get_job_matches_invalid_status(self, service, devops_job):
        with pytest.raises(InvalidInput):
            await service.get_job_matches(str(devops_job.id), status="rejected")
