"""AI audit layer: analysis, suggestion generation and job scheduling.

Public API::

    from siteaudit.audit import JobScheduler, providers_from_settings
    scheduler = JobScheduler(providers_from_settings(), on_result=print)
    summary = await scheduler.process_queue(jobs, context)
"""

from siteaudit.audit.models import AuditResult, Job, SchedulerSummary, SiteContext
from siteaudit.audit.providers import build_provider, parse_credentials, providers_from_settings
from siteaudit.audit.quick_scan import quick_scan
from siteaudit.audit.scheduler import JobScheduler

__all__ = [
    "AuditResult",
    "Job",
    "JobScheduler",
    "SchedulerSummary",
    "SiteContext",
    "build_provider",
    "parse_credentials",
    "providers_from_settings",
    "quick_scan",
]
