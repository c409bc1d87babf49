"""Ordered multi-step workflows.

Provides:
- AssetIssuanceWorkflow: issue, lock, pool and swap
- VaultWorkflow: create a vault and deposit into it
"""

from stellarflow.workflows.base import StepResult, Workflow, WorkflowResult
from stellarflow.workflows.issuance import AssetIssuanceWorkflow, IssuanceParams
from stellarflow.workflows.vault import VaultParams, VaultWorkflow

__all__ = [
    # Results
    "StepResult",
    "WorkflowResult",
    "Workflow",
    # Workflows
    "AssetIssuanceWorkflow",
    "IssuanceParams",
    "VaultWorkflow",
    "VaultParams",
]
