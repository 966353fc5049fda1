"""
Job runners for the mail triage feature.
"""

from .triage_job import (
    MailTriageJob,
    MailTriageJobError,
    build_mail_triage_job,
    run_mail_triage_once,
    start_mail_triage_scheduler,
)

__all__ = [
    "MailTriageJob",
    "MailTriageJobError",
    "build_mail_triage_job",
    "run_mail_triage_once",
    "start_mail_triage_scheduler",
]
