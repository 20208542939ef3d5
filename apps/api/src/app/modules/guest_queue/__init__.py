"""
Guest Queue Module

Walk-in queue for the admissions office counters:
1. Ticket creation with per-department daily numbering (AD1, RE1, ...)
2. Counter flow: accept, finish, skip, reintegrate
3. Staff exits: transfer to another department, remove
4. Append-only archive with waiting / serving / total durations
5. Dashboard statistics and archive export

Background Jobs (via APScheduler):
- sweep_stale_tickets: archives tickets left over from an earlier day
- reconcile_archived_tickets: deletes active rows that were already archived
"""

from .admin_router import router as admin_router
from .jobs import register_guest_queue_jobs
from .router import router

__all__ = ["router", "admin_router", "register_guest_queue_jobs"]
