import time
import psutil
import logging
from typing import TYPE_CHECKING

from runpod_boss.local.gate import artifact_present, is_provisioned, required_artifacts
from runpod_boss.local.provision import ProvisioningPlanner, build_provision_steps
from runpod_boss.local.supervisor import persistence

if TYPE_CHECKING:
    from runpod_boss.local.config import MergedSettings

log = logging.getLogger(__name__)


def display_status(settings: "MergedSettings") -> int:
    """Checks and displays the current status of all supervised services, including resource usage."""
    pids = persistence.get_pid_info(settings.PID_FILE_PATH)
    if not pids:
        print("\nServices are STOPPED (No PID file found).\n")
        return 0

    print("\n--- Service Status ---")
    all_stale = True
    total_cpu = 0.0
    total_mem = 0

    for name, pid in sorted(pids.items()):
        try:
            if psutil.pid_exists(pid):
                p = psutil.Process(pid)
                cpu = p.cpu_percent(interval=0.1)
                mem = p.memory_info().rss
                print(f"  - {p.name() + ' (' + name + ')':<32} : PID {pid:<8} | Status: {p.status().upper()} | CPU: {cpu:.1f}% | MEM: {mem/1024/1024:.1f} MB")
                total_cpu += cpu
                total_mem += mem
                all_stale = False
            else:
                print(f"  - {name:<30} : PID {pid:<8} | Status: STOPPED (Stale PID)")
        except psutil.NoSuchProcess:
            print(f"  - {name:<30} : PID {pid:<8} | Status: STOPPED (Stale PID)")
        except psutil.AccessDenied:
            print(f"  - {name:<30} : PID {pid:<8} | Status: RUNNING (Access Denied)")
            all_stale = False

    print(f"\nTOTAL CPU: {total_cpu:.1f}%  |  TOTAL MEMORY: {total_mem/1024/1024:.1f} MB")
    try:
        started = settings.PID_FILE_PATH.stat().st_mtime
        print(f"Runtime: {time.strftime('%H:%M:%S', time.gmtime(time.time() - started))}")
    except OSError:
        pass

    if all_stale:
        print("\nWARNING: All services are stopped but a stale PID file exists.")
        print("It is replaced on the next 'start' or 'serve'.")
    print("-" * 22 + "\n")
    return 0


def display_check(settings: "MergedSettings") -> int:
    """Prints the fast-restart verdict and the provisioning steps that are still pending."""
    print(f"\n--- Workspace Check ({settings.APP_PROFILE} / {settings.GPU_PROFILE}) ---")
    for path in required_artifacts(settings):
        state = "present" if artifact_present(settings, path) else "MISSING"
        print(f"  {str(path):<50} {state}")

    if is_provisioned(settings):
        print("\nProvisioned: 'start' will skip provisioning and linking (fast restart).")
    else:
        print("\nNot provisioned: 'start' will run first-boot setup.")

    pending = ProvisioningPlanner(settings).pending_steps(build_provision_steps(settings))
    if pending:
        print(f"\nPending provisioning steps ({len(pending)}):")
        for step in pending:
            print(f"  [{step.rank:>2}] {step.name}")
    else:
        print("\nAll provisioning steps are satisfied.")
    print()
    return 0


def print_help() -> int:
    """Prints the help text for the command line."""
    print("\nUsage: runpod-boss <command> [--verbose] [--workspace PATH] [--profile PROFILE] [--gpu GPU]")
    print("\nAvailable commands:")
    print("  start                  - Provision and link if needed, then supervise all services (default).")
    print("  provision [--dry-run]  - Run (or list) the provisioning steps only.")
    print("  link                   - Move application model folders into the shared store.")
    print("  serve                  - Supervise the services without checking the workspace.")
    print("  status                 - Show the current status of all services.")
    print("  check                  - Show whether the workspace is provisioned and what is pending.")
    print("  help                   - Show this help message.")
    print()
    return 0
