"""Domain port protocols for decoupling services from infrastructure."""

from .notifier import ApprovalNotifier, ApprovalRequest, NotificationRef

__all__ = ["ApprovalNotifier", "ApprovalRequest", "NotificationRef"]
