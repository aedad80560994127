"""Tests for PipelineRunner."""

import logging
from unittest.mock import patch

import pytest

from fleetrun.errors import StorageError
from fleetrun.model import Job, LogStatus, Step
from fleetrun.pipeline import build_pipeline
from fleetrun.registry import Registry
from fleetrun.runner import PipelineRunner


def _local_job(*scripts):
    return Job(id="job", pipeline=tuple(Step(machine="local", script=s) for s in scripts))


@pytest.fixture
def run_local(store, loopback):
    """Build and run a job of local steps; returns (log id, outcome)."""
    def _run(job):
        registry = Registry(jobs=[job])
        pipeline = build_pipeline(registry, store, job.id)
        outcome = PipelineRunner(store, loopback(registry)).run(pipeline)
        return pipeline.log_id, outcome
    return _run


class TestSuccess:
    def test_all_steps_succeed(self, write_script, run_local, store, read_log):
        for n in (1, 2, 3):
            write_script(f"s{n}.sh", f"echo step {n}")

        log_id, outcome = run_local(_local_job("s1.sh", "s2.sh", "s3.sh"))

        assert outcome is LogStatus.FINISHED
        assert read_log(log_id) == ["step 1", "step 2", "step 3", "-----Finished-----"]
        record = store.get(log_id)
        assert record.status is LogStatus.FINISHED
        assert record.start_time is not None
        assert record.end_time >= record.start_time

    def test_args_are_passed(self, write_script, run_local, read_log):
        write_script("greet.sh", 'echo "hello $1 ($#)"')
        job = Job(id="job", pipeline=(Step(machine="local", script="greet.sh", args=("big world",)),))

        log_id, _ = run_local(job)

        assert read_log(log_id)[0] == "hello big world (1)"

    def test_stderr_is_merged_in_order(self, write_script, run_local, read_log):
        write_script("mixed.sh", "echo out1\necho err1 1>&2\necho out2")

        log_id, _ = run_local(_local_job("mixed.sh"))

        assert read_log(log_id) == ["out1", "err1", "out2", "-----Finished-----"]

    def test_empty_pipeline_finishes(self, run_local, read_log):
        log_id, outcome = run_local(Job(id="job", pipeline=()))
        assert outcome is LogStatus.FINISHED
        assert read_log(log_id) == ["-----Finished-----"]


class TestFailFast:
    def test_first_failure_stops_the_run(self, write_script, run_local, store, read_log, root):
        write_script("ok.sh", "echo first")
        write_script("bad.sh", "echo second\nexit 4")
        write_script("never.sh", f"touch {root / 'ran-third'}\necho third")

        log_id, outcome = run_local(_local_job("ok.sh", "bad.sh", "never.sh"))

        assert outcome is LogStatus.ERROR
        assert read_log(log_id) == ["first", "second", "-----Error-----"]
        assert not (root / "ran-third").exists()
        record = store.get(log_id)
        assert record.status is LogStatus.ERROR
        assert record.end_time is not None

    def test_launch_failure_is_error(self, write_script, run_local, read_log, root):
        write_script("after.sh", f"touch {root / 'ran-after'}")

        log_id, outcome = run_local(_local_job("does-not-exist.sh", "after.sh"))

        assert outcome is LogStatus.ERROR
        assert read_log(log_id) == ["-----Error-----"]
        assert not (root / "ran-after").exists()

    def test_unknown_machine_in_step_is_error(self, run_local, read_log):
        job = Job(id="job", pipeline=(Step(machine="web9", script="x.sh"),))

        log_id, outcome = run_local(job)

        assert outcome is LogStatus.ERROR
        assert read_log(log_id) == ["-----Error-----"]


class TestDeployScenario:
    def test_remote_failure_after_local_build(self, registry, store, dispatcher, write_script, read_log):
        """build.sh succeeds locally, deploy.sh fails on web1."""
        write_script("build.sh", "echo build ok")
        write_script("deploy.sh", "echo deploy failed\nexit 1")
        pipeline = build_pipeline(registry, store, "deploy")

        outcome = PipelineRunner(store, dispatcher).run(pipeline)

        assert outcome is LogStatus.ERROR
        assert read_log(pipeline.log_id) == ["build ok", "deploy failed", "-----Error-----"]
        assert store.get(pipeline.log_id).status is LogStatus.ERROR

    def test_step_log_names_transport(self, registry, store, dispatcher, write_script, caplog):
        write_script("build.sh", "true")
        write_script("deploy.sh", "true")
        caplog.set_level(logging.INFO, logger="fleetrun.runner")

        PipelineRunner(store, dispatcher).run(build_pipeline(registry, store, "deploy"))

        assert "step 1/2: build.sh on local (local)" in caplog.text
        assert "step 2/2: deploy.sh on web1 (ssh)" in caplog.text


class TestStorageFailure:
    def test_unwritable_log_aborts_run(self, write_script, store, loopback):
        write_script("chatty.sh", "echo hi")
        registry = Registry(jobs=[_local_job("chatty.sh")])
        pipeline = build_pipeline(registry, store, "job")
        runner = PipelineRunner(store, loopback(registry))

        with patch.object(store, "append", side_effect=StorageError("disk full")):
            with pytest.raises(StorageError, match="disk full"):
                runner.run(pipeline)

        assert store.get(pipeline.log_id).status is LogStatus.ERROR

    def test_run_cannot_be_repeated(self, write_script, store, loopback):
        write_script("ok.sh", "true")
        registry = Registry(jobs=[_local_job("ok.sh")])
        pipeline = build_pipeline(registry, store, "job")
        runner = PipelineRunner(store, loopback(registry))
        runner.run(pipeline)

        with pytest.raises(StorageError):
            runner.run(pipeline)
