"""
CI workflow integration.
"""

from .github import SUCCESS, WorkflowBridge

__all__ = ["SUCCESS", "WorkflowBridge"]
