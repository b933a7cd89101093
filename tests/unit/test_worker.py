import pytest

from music_pipeline.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"argv": None}

    async def dummy_job(argv):
        called["argv"] = argv
        return 0

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    exit_code = await worker.run_worker("dummy", ["--limit", "5"])

    assert exit_code == 0
    assert called["argv"] == ["--limit", "5"]


@pytest.mark.asyncio
async def test_run_worker_returns_job_exit_code(monkeypatch):
    async def failing_job(argv):
        return 1

    monkeypatch.setitem(worker.JOB_REGISTRY, "failing", failing_job)

    assert await worker.run_worker("FAILING") == 1


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_resolve_job_from_args_or_env(monkeypatch):
    monkeypatch.setenv("WORKER_JOB", "generate_features")

    assert worker._resolve_job(["ingest_catalog", "--target", "10"]) == (
        "ingest_catalog",
        ["--target", "10"],
    )
    assert worker._resolve_job(["--limit", "10"]) == ("generate_features", ["--limit", "10"])
