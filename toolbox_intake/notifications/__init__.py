"""
Stakeholder notifications.
"""

from .email import EmailNotifier, EmailResult

__all__ = ["EmailNotifier", "EmailResult"]
