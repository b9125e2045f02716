"""Run execution: contexts, hooks, dependency probes and the orchestrator."""

from .context import ExecutionContext, LocalContext
from .dependencies import DependencyResult, DependencyStatus, DependencyVerifier
from .hooks import HookScheduler
from .orchestrator import Orchestrator
from .process import CompletedCommand, ProcessHandle, ProcessRegistry, registry
from .remote import RemoteAddress, RemoteChannel, RemoteProvider
from .results import CaseResult, ExitCode, RunReport, RunState, TestFailure
from .runners import FlutterRunner, TestRunner, get_runner

__all__ = (
    'CaseResult',
    'CompletedCommand',
    'DependencyResult',
    'DependencyStatus',
    'DependencyVerifier',
    'ExecutionContext',
    'ExitCode',
    'FlutterRunner',
    'HookScheduler',
    'LocalContext',
    'Orchestrator',
    'ProcessHandle',
    'ProcessRegistry',
    'RemoteAddress',
    'RemoteChannel',
    'RemoteProvider',
    'RunReport',
    'RunState',
    'TestFailure',
    'TestRunner',
    'get_runner',
    'registry',
)
