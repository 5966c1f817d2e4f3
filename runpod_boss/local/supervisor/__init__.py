"""
The Supervisor package.
Launches the pod's services, forwards termination requests to them and
waits for them to exit.
"""
from .services import ServiceSpec, build_service_specs, build_warmup_command
from .supervisor import ProcessManager

__all__ = ['ProcessManager', 'ServiceSpec', 'build_service_specs', 'build_warmup_command']
