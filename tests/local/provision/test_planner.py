"""Unit tests for the provisioning planner."""

import pytest

from runpod_boss.local.errors import ProvisioningError
from runpod_boss.local.provision import Action, ProvisioningPlanner, ProvisionStep, WriteFile
from runpod_boss.local.provision.planner import order_steps
from runpod_boss.local.provision.steps import file_exists


class RecordingAction(Action):
    """Writes a file and records that it ran; can be told to fail."""

    def __init__(self, path, calls, fail=False):
        self.path = path
        self.calls = calls
        self.fail = fail

    def run(self, step_name):
        self.calls.append(step_name)
        if self.fail:
            raise ProvisioningError(step_name, "simulated failure", 1)
        self.path.write_text("done")


def _step(tmp_path, name, rank, calls, fail=False):
    target = tmp_path / f"{name}.out"
    return ProvisionStep(name, rank, file_exists(target), (RecordingAction(target, calls, fail),))


class TestOrdering:
    """Test rank ordering of steps."""

    def test_sorted_by_rank_with_stable_ties(self, tmp_path):
        calls = []
        steps = [
            _step(tmp_path, "late", 90, calls),
            _step(tmp_path, "tie-first", 20, calls),
            _step(tmp_path, "early", 10, calls),
            _step(tmp_path, "tie-second", 20, calls),
        ]
        assert [s.name for s in order_steps(steps)] == ["early", "tie-first", "tie-second", "late"]

    def test_runs_in_rank_order(self, settings, tmp_path):
        calls = []
        steps = [_step(tmp_path, "b", 2, calls), _step(tmp_path, "a", 1, calls)]

        ProvisioningPlanner(settings).run(steps)

        assert calls == ["a", "b"]


class TestIdempotence:
    """Test that satisfied steps are never executed."""

    def test_second_run_executes_nothing(self, settings, tmp_path):
        calls = []
        steps = [_step(tmp_path, name, rank, calls) for rank, name in enumerate(["one", "two", "three"])]
        planner = ProvisioningPlanner(settings)

        first = planner.run(steps)
        second = planner.run(steps)

        assert first.executed == ["one", "two", "three"]
        assert second.executed == []
        assert second.skipped == ["one", "two", "three"]
        assert calls == ["one", "two", "three"]

    def test_pre_satisfied_step_is_skipped(self, settings, tmp_path):
        calls = []
        steps = [_step(tmp_path, name, rank, calls) for rank, name in enumerate(["one", "two"])]
        (tmp_path / "one.out").write_text("already here")

        report = ProvisioningPlanner(settings).run(steps)

        assert report.skipped == ["one"]
        assert report.executed == ["two"]


class TestFailureAndConvergence:
    """Test abort-on-failure and convergence on re-run."""

    def test_failure_stops_later_steps(self, settings, tmp_path):
        calls = []
        steps = [
            _step(tmp_path, "one", 1, calls),
            _step(tmp_path, "two", 2, calls, fail=True),
            _step(tmp_path, "three", 3, calls),
        ]

        with pytest.raises(ProvisioningError) as excinfo:
            ProvisioningPlanner(settings).run(steps)

        assert excinfo.value.step == "two"
        assert excinfo.value.returncode == 1
        assert calls == ["one", "two"]
        assert not (tmp_path / "three.out").exists()

    def test_rerun_resumes_from_failed_step(self, settings, tmp_path):
        calls = []
        failing = [
            _step(tmp_path, "one", 1, calls),
            _step(tmp_path, "two", 2, calls, fail=True),
            _step(tmp_path, "three", 3, calls),
        ]
        planner = ProvisioningPlanner(settings)
        with pytest.raises(ProvisioningError):
            planner.run(failing)

        fixed = [
            _step(tmp_path, "one", 1, calls),
            _step(tmp_path, "two", 2, calls),
            _step(tmp_path, "three", 3, calls),
        ]
        report = planner.run(fixed)

        assert report.skipped == ["one"]
        assert report.executed == ["two", "three"]
        assert planner.pending_steps(fixed) == []


class TestDryRun:
    """Test that a dry run reports without acting."""

    def test_dry_run_lists_pending_steps(self, settings, tmp_path):
        target = tmp_path / "generated.txt"
        steps = [ProvisionStep("generate", 1, file_exists(target), (WriteFile(target, "x"),))]

        report = ProvisioningPlanner(settings).run(steps, dry_run=True)

        assert report.pending == ["generate"]
        assert report.executed == []
        assert not target.exists()
