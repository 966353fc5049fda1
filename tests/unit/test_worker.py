import pytest

from app.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_registry_exposes_triage_jobs():
    assert set(worker.JOB_REGISTRY) == {"mail_triage", "mail_triage_once"}


@pytest.mark.asyncio
async def test_job_name_from_environment(monkeypatch):
    called = []

    async def once():
        called.append("once")

    monkeypatch.setattr(worker.sys, "argv", ["worker"])
    monkeypatch.setenv("WORKER_JOB", " Mail_Triage_Once ")
    monkeypatch.setitem(worker.JOB_REGISTRY, "mail_triage_once", once)

    await worker.run_worker()

    assert called == ["once"]
