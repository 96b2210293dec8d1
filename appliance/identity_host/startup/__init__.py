"""
Startup module - the supervised startup sequence.
"""

from .orchestrator import OrchestrationResult, OrchestratorState, StartupOrchestrator

__all__ = [
    "OrchestrationResult",
    "OrchestratorState",
    "StartupOrchestrator",
]
