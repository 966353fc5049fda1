"""
Mail triage feature package.

Everything the triage batch needs lives here: domain models, the
classification and extraction pipeline, the dedup/throttle services, the
batch job and its HTTP routes.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as triage_router  # noqa: F401
from .jobs.triage_job import MailTriageJob, build_mail_triage_job  # noqa: F401
from .domain.models import ClassificationResult, InboundMessage, ProcessOutcome  # noqa: F401
