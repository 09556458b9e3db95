"""Queue status queries and routes."""

from .jobs_service import QueueStatusService

__all__ = ["QueueStatusService"]
