"""
Tests for talentmatch.core.matching.candidate_matches: job matches per
candidate, searched over the in-memory job index from conftest.
"""

import pytest

from talentmatch.core.matching import CandidateMatcher, CandidateMatchService
from talentmatch.utils.config import MatchingSettings
from talentmatch.utils.exceptions import (
    IndexUnavailable,
    InvalidInput,
    OperationTimeout,
    RecordNotFound,
)


@pytest.fixture
def service(matcher, job_index, candidate_repository, candidate_match_repository):
    return CandidateMatchService(
        matcher=matcher,
        job_index=job_index,
        candidate_repository=candidate_repository,
        match_repository=candidate_match_repository,
        concurrency=2,
        max_stored_matches=3,
    )


@pytest.fixture
def jobs(make_job):
    return {
        "senior": make_job(
            "DevOps Engineer",
            description="Run Kubernetes clusters and DevOps pipelines",
            skills=["DevOps", "Kubernetes"],
            exp_req=5,
            role="DevOps",
        ),
        "junior": make_job(
            "Junior DevOps",
            description="DevOps automation",
            skills=["DevOps"],
            exp_req=1,
            role="DevOps",
        ),
        "frontend": make_job(
            "Frontend Developer",
            description="Build web interfaces",
            skills=["React"],
            exp_req=2,
            role="Frontend",
        ),
        "unembedded": make_job(
            "DevOps Lead",
            description="DevOps pipelines",
            skills=["DevOps"],
            embedded=False,
        ),
    }


@pytest.fixture
def alice(candidate_repository, make_candidate_doc):
    return candidate_repository.add(
        make_candidate_doc(
            "Alice",
            experience=3,
            skills=["DevOps", "Kubernetes"],
            bio="Platform engineer running DevOps pipelines",
        )
    )


def ids(*jobs):
    return [str(job.id) for job in jobs]


# ── match_jobs_for_candidate ────────────────────────────────────────────────


class TestMatchJobsForCandidate:
    @pytest.mark.asyncio
    async def test_ranks_jobs_by_similarity(self, service, jobs, alice):
        result = await service.match_jobs_for_candidate(str(alice["_id"]))

        assert result.job_ids == ids(jobs["senior"], jobs["junior"], jobs["frontend"])
        scores = [j.score for j in result.jobs]
        assert scores == sorted(scores, reverse=True)
        assert result.query == "Alice"
        assert result.pool_size == 3

    @pytest.mark.asyncio
    async def test_fit_experience_uses_candidate_experience(self, service, jobs, alice):
        result = await service.match_jobs_for_candidate(
            str(alice["_id"]), filters={"fit_experience": True}
        )
        assert result.job_ids == ids(jobs["junior"], jobs["frontend"])
        assert all(job.exp_req <= 3 for job in result.jobs)

    @pytest.mark.asyncio
    async def test_role_filter(self, service, jobs, alice):
        result = await service.match_jobs_for_candidate(str(alice["_id"]), filters={"role": "Frontend"})
        assert result.job_ids == ids(jobs["frontend"])

    @pytest.mark.asyncio
    async def test_limit_and_over_fetch(self, service, jobs, alice, job_index):
        result = await service.match_jobs_for_candidate(str(alice["_id"]), limit=2)
        assert len(result) == 2
        assert job_index.fetch_sizes == [20]

    @pytest.mark.asyncio
    async def test_embeds_missing_candidate_vector_once(self, service, jobs, alice, fake_embedder):
        assert "vector" not in alice

        await service.match_jobs_for_candidate(str(alice["_id"]))
        assert alice["vector_model"] == fake_embedder.model_version
        calls = fake_embedder.calls

        await service.match_jobs_for_candidate(str(alice["_id"]))
        assert fake_embedder.calls == calls

    @pytest.mark.asyncio
    async def test_stale_job_vectors_excluded(self, service, jobs, alice):
        jobs["junior"].vector_model = "old-model@v0"
        result = await service.match_jobs_for_candidate(str(alice["_id"]))
        assert str(jobs["junior"].id) not in result.job_ids

    @pytest.mark.asyncio
    async def test_no_jobs_is_empty_success(self, service, alice):
        result = await service.match_jobs_for_candidate(str(alice["_id"]))
        assert result.is_empty
        assert result.pool_size == 0

    @pytest.mark.asyncio
    async def test_unknown_candidate(self, service, jobs):
        with pytest.raises(RecordNotFound):
            await service.match_jobs_for_candidate("64b7f0c2a1b2c3d4e5f60718")

    @pytest.mark.asyncio
    async def test_malformed_filter(self, service, jobs, alice, job_index):
        with pytest.raises(InvalidInput):
            await service.match_jobs_for_candidate(str(alice["_id"]), filters={"max_exp_req": "many"})
        assert job_index.fetch_sizes == []

    @pytest.mark.asyncio
    async def test_bad_limit(self, service, alice):
        with pytest.raises(InvalidInput):
            await service.match_jobs_for_candidate(str(alice["_id"]), limit=0)

    @pytest.mark.asyncio
    async def test_index_failure_propagates(self, service, jobs, alice, job_index):
        job_index.error = IndexUnavailable("job_postings vector search failed")
        with pytest.raises(IndexUnavailable):
            await service.match_jobs_for_candidate(str(alice["_id"]))

    @pytest.mark.asyncio
    async def test_slow_index_is_operation_timeout(
        self, fake_embedder, candidate_index, job_index, candidate_repository, jobs, alice
    ):
        job_index.delay = 0.5
        service = CandidateMatchService(
            matcher=CandidateMatcher(
                embedder=fake_embedder,
                index=candidate_index,
                settings=MatchingSettings(query_timeout_seconds=0.05),
            ),
            job_index=job_index,
            candidate_repository=candidate_repository,
        )
        with pytest.raises(OperationTimeout):
            await service.match_jobs_for_candidate(str(alice["_id"]))


# ── refresh_candidate_matches ───────────────────────────────────────────────


class TestRefreshCandidateMatches:
    @pytest.mark.asyncio
    async def test_stores_best_matches(self, service, jobs, alice, candidate_match_repository):
        stored = await service.refresh_candidate_matches(str(alice["_id"]))

        assert stored.job_ids == ids(jobs["senior"], jobs["junior"], jobs["frontend"])
        assert all(-1.0 <= e.match_score <= 1.0 for e in stored.matches)
        assert candidate_match_repository.stored[str(alice["_id"])] is stored

    @pytest.mark.asyncio
    async def test_bounded_by_max_stored_matches(
        self, matcher, job_index, candidate_repository, candidate_match_repository, jobs, alice
    ):
        service = CandidateMatchService(
            matcher=matcher,
            job_index=job_index,
            candidate_repository=candidate_repository,
            match_repository=candidate_match_repository,
            max_stored_matches=1,
        )
        stored = await service.refresh_candidate_matches(str(alice["_id"]))
        assert stored.job_ids == ids(jobs["senior"])

    @pytest.mark.asyncio
    async def test_refresh_replaces_previous_entries(self, service, jobs, alice):
        await service.refresh_candidate_matches(str(alice["_id"]), filters={"role": "Frontend"})
        stored = await service.refresh_candidate_matches(str(alice["_id"]), filters={"role": "DevOps"})
        assert stored.job_ids == ids(jobs["senior"], jobs["junior"])

    @pytest.mark.asyncio
    async def test_get_candidate_matches(self, service, jobs, alice):
        assert await service.get_candidate_matches(str(alice["_id"])) == []

        await service.refresh_candidate_matches(str(alice["_id"]))
        entries = await service.get_candidate_matches(str(alice["_id"]))
        assert [str(e.job_id) for e in entries] == ids(jobs["senior"], jobs["junior"], jobs["frontend"])


class TestRefreshAllCandidateMatches:
    @pytest.mark.asyncio
    async def test_only_active_candidates(
        self, service, jobs, alice, candidate_repository, make_candidate_doc
    ):
        inactive = candidate_repository.add(
            make_candidate_doc("Bob", skills=["DevOps"], is_active=False)
        )

        report = await service.refresh_all_candidate_matches()

        assert report.job == "candidate_matches"
        assert [o.record_id for o in report.outcomes] == [str(alice["_id"])]
        assert str(inactive["_id"]) not in [o.record_id for o in report.outcomes]
        assert report.succeeded == 1

    @pytest.mark.asyncio
    async def test_failures_are_isolated(
        self, service, jobs, alice, candidate_repository, candidate_match_repository, make_candidate_doc
    ):
        blocked = candidate_repository.add(make_candidate_doc("Carol", skills=["React"]))
        malformed = candidate_repository.add(make_candidate_doc("Dave", skills=["Go"]))
        malformed["name"] = None
        candidate_match_repository.fail_for.add(str(blocked["_id"]))

        report = await service.refresh_all_candidate_matches()

        assert report.total == 3
        assert report.succeeded == 1
        kinds = {o.record_id: o.error_kind for o in report.failures}
        assert kinds == {
            str(blocked["_id"]): "IndexUnavailable",
            str(malformed["_id"]): "InvalidInput",
        }
        assert str(alice["_id"]) in candidate_match_repository.stored

    @pytest.mark.asyncio
    async def test_listing_failure_raises(self, service, candidate_repository):
        candidate_repository.list_error = IndexUnavailable("list candidates failed")
        with pytest.raises(IndexUnavailable):
            await service.refresh_all_candidate_matches()
