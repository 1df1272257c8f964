"""Permission reconciliation for the agent configuration and monitored logs."""
from .reconciler import POLICY_TABLE, PermissionReconciler, PermissionReport

__all__ = ["POLICY_TABLE", "PermissionReconciler", "PermissionReport"]
