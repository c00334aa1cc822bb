from robosite.models.job import Job
from robosite.models.job_log import JobLog

__all__ = ["Job", "JobLog"]
