"""Job runner around the orchestrator."""

import threading

import pytest

from adgen.models.jobs import JobKind, JobStatus
from adgen.services.errors import CollaboratorError, GenerationInProgress, NotFound
from adgen.services.jobs import JobRunner


@pytest.fixture
def runner(orchestrator):
    runner = JobRunner(orchestrator, max_workers=2)
    yield runner
    runner.shutdown()


def test_generation_job_completes(runner, repository, campaign):
    job = runner.submit_generation(campaign.id)
    assert job.kind is JobKind.GENERATE_ADS

    finished = runner.wait(job.id, timeout=10)

    assert finished.status is JobStatus.COMPLETED
    assert finished.error is None
    assert len(repository.list_generated_ads(campaign.id)) == 3


def test_failed_run_is_recorded_on_the_job(runner, campaign, text_generator):
    text_generator.error = CollaboratorError("Text generation", "quota exceeded")

    job = runner.wait(runner.submit_generation(campaign.id).id, timeout=10)

    assert job.status is JobStatus.FAILED
    assert job.error == "Text generation failed: quota exceeded"


def test_second_submit_while_running_is_rejected(runner, campaign, text_generator):
    started = threading.Event()
    release = threading.Event()
    original = text_generator.generate_text

    def slow_generate_text(system_prompt, user_prompt):
        started.set()
        release.wait(timeout=5)
        return original(system_prompt, user_prompt)

    text_generator.generate_text = slow_generate_text
    job = runner.submit_generation(campaign.id)
    try:
        assert started.wait(timeout=5)
        with pytest.raises(GenerationInProgress):
            runner.submit_generation(campaign.id)
        with pytest.raises(GenerationInProgress):
            runner.submit_background_regeneration(campaign.id)
    finally:
        release.set()

    assert runner.wait(job.id, timeout=10).status is JobStatus.COMPLETED
    # The slot is free again once the run ends.
    second = runner.submit_background_regeneration(campaign.id)
    assert runner.wait(second.id, timeout=10).status is JobStatus.COMPLETED


def test_jobs_are_listed_per_campaign(runner, campaign):
    job = runner.submit_generation(campaign.id)
    runner.wait(job.id, timeout=10)

    assert [j.id for j in runner.list_jobs(campaign.id)] == [job.id]
    assert runner.list_jobs("other") == []


def test_unknown_job(runner):
    with pytest.raises(NotFound):
        runner.get_job("missing")
