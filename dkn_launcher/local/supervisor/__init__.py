"""
The Supervisor package.
Manages the lifecycle of the compute node process.

This package contains the central ComputeSupervisor class and its helper modules,
which together handle starting, monitoring, updating and stopping the node.
"""
from .process_utils import ChildProcess, ProcessControl, get_process_control
from .supervisor import ComputeSupervisor, SupervisorState

__all__ = ['ChildProcess', 'ComputeSupervisor', 'ProcessControl', 'SupervisorState', 'get_process_control']
