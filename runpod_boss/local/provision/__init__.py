"""
The Provisioning package.
Computes, from on-disk state, which install steps are still required and runs them.
"""
from .actions import Action, AppendToLastLine, Command, Download, Marker, RemoveFiles, WriteFile
from .catalog import build_provision_steps, build_runtime_binary_steps
from .planner import PlanReport, ProvisioningPlanner
from .steps import ProvisionStep

__all__ = [
    'Action', 'AppendToLastLine', 'Command', 'Download', 'Marker', 'RemoveFiles', 'WriteFile',
    'build_provision_steps', 'build_runtime_binary_steps',
    'PlanReport', 'ProvisioningPlanner', 'ProvisionStep',
]
