"""
Background Jobs Module

Handles scheduled tasks for:
- Monthly billing runs
- Reservation expiry
- Storage snapshots
- Overdue invoice marking
"""

from wms_billing.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
]
