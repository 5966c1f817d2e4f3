import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List

from runpod_boss.local.errors import ProvisioningError
from .steps import ProvisionStep

if TYPE_CHECKING:
    from runpod_boss.local.config import MergedSettings

log = logging.getLogger(__name__)


@dataclass
class PlanReport:
    """Outcome of one provisioning run."""
    executed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)
    duration: float = 0.0


def order_steps(steps: Iterable[ProvisionStep]) -> List[ProvisionStep]:
    """Sorts steps by ascending rank; ties keep their given order."""
    return sorted(steps, key=lambda step: step.rank)


class ProvisioningPlanner:
    """
    Executes the provisioning steps whose idempotency check does not hold yet.

    A failing action stops the run immediately and nothing is rolled back:
    running the planner again skips what already succeeded and retries the
    rest, so repeated runs converge on a fully provisioned workspace.
    """

    def __init__(self, settings: "MergedSettings") -> None:
        self.settings = settings

    def pending_steps(self, steps: Iterable[ProvisionStep]) -> List[ProvisionStep]:
        """Returns the steps that would run now, without running anything."""
        return [step for step in order_steps(steps) if not step.is_satisfied()]

    def run(self, steps: Iterable[ProvisionStep], dry_run: bool = False) -> PlanReport:
        """
        Runs every unsatisfied step in rank order.

        :param steps: The steps to consider.
        :param dry_run: If True, only report which steps would run.
        :return PlanReport: Executed, skipped and (for dry runs) pending step names.
        :raises ProvisioningError: On the first failing action.
        """
        report = PlanReport()
        start_time = time.monotonic()
        ordered = order_steps(steps)
        log.info(f"--- Provisioning: evaluating {len(ordered)} steps ---")

        for index, step in enumerate(ordered, start=1):
            if step.is_satisfied():
                log.info(f"[{index}/{len(ordered)}] {step.name}: already satisfied, skipping.")
                report.skipped.append(step.name)
                continue

            if dry_run:
                log.info(f"[{index}/{len(ordered)}] {step.name}: would run {len(step.actions)} action(s).")
                report.pending.append(step.name)
                continue

            log.info(f"[{index}/{len(ordered)}] {step.name}: running...")
            try:
                for action in step.actions:
                    action.run(step.name)
            except ProvisioningError as e:
                log.critical(f"{e}. Provisioning aborted; re-run to resume from this step.")
                raise
            report.executed.append(step.name)
            log.info(f"[{index}/{len(ordered)}] {step.name}: done.")

        report.duration = time.monotonic() - start_time
        log.info(
            f"--- Provisioning finished in {report.duration:.2f}s: "
            f"{len(report.executed)} executed, {len(report.skipped)} skipped ---"
        )
        return report
