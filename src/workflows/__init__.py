"""
Workflows module - Import orchestration for news harvesting.
"""
from workflows.base import ImportWorkflow
from workflows.importer import ImportOrchestrator, create_orchestrator

__all__ = [
    "ImportWorkflow",
    "ImportOrchestrator",
    "create_orchestrator",
]
