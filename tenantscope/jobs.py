"""
Background work units that carry the tenant they were enqueued under.

Job is a minimal serializable unit of work: its payload is a JSON-ready
dict that any queue (a database table, Redis, a message broker) can store.
TenantJobMixin adds tenant propagation on top:

    class RebuildIndexJob(TenantJobMixin, Job):
        def perform(self, index_name):
            ...

    with tenant.scoped("acme"):
        payload = RebuildIndexJob("articles").to_json()

    # later, in a worker with no tenant active
    Job.from_json(payload).perform_now()   # runs inside "acme"

The tenant is stored under the "tenant_for_job" key. A job enqueued with
no active tenant runs with no tenant, even when require_tenant is on.
"""

import importlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from tenantscope.tenant_context import tenant

logger = logging.getLogger(__name__)

TENANT_KEY = 'tenant_for_job'


def _job_class_path(job_class: type) -> str:
    if '<locals>' in job_class.__qualname__:
        raise ValueError(
            f"{job_class.__qualname__} is defined inside a function and cannot be loaded by workers"
        )
    return f"{job_class.__module__}.{job_class.__qualname__}"


def _load_job_class(path: str) -> type:
    # Longest importable module prefix, then attributes (nested classes)
    parts = path.split('.')
    for index in range(len(parts) - 1, 0, -1):
        try:
            target = importlib.import_module('.'.join(parts[:index]))
        except ModuleNotFoundError:
            continue
        for name in parts[index:]:
            target = getattr(target, name)
        return target
    raise ValueError(f"Invalid job class path: {path!r}")


class Job:
    """Serializable unit of work. Subclasses implement perform()."""

    def __init__(self, *arguments):
        self.job_id = str(uuid4())
        self.arguments = list(arguments)
        self.enqueued_at: Optional[str] = None

    def perform(self, *arguments) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement perform()")

    def perform_now(self) -> Any:
        """Run the job in the calling flow and return perform()'s result."""
        logger.info(
            f"Performing {type(self).__name__} {self.job_id}",
            extra={'job_id': self.job_id, 'job_class': type(self).__name__}
        )
        return self.perform(*self.arguments)

    def serialize(self) -> Dict[str, Any]:
        if self.enqueued_at is None:
            self.enqueued_at = datetime.now(timezone.utc).isoformat()
        return {
            'job_class': _job_class_path(type(self)),
            'job_id': self.job_id,
            'arguments': list(self.arguments),
            'enqueued_at': self.enqueued_at,
        }

    @classmethod
    def deserialize(cls, data: Dict[str, Any]) -> 'Job':
        job = cls(*data.get('arguments', []))
        job.job_id = data.get('job_id', job.job_id)
        job.enqueued_at = data.get('enqueued_at')
        return job

    def to_json(self) -> str:
        return json.dumps(self.serialize())

    @classmethod
    def from_json(cls, payload: str) -> 'Job':
        """
        Rebuild a job from its JSON payload.

        Called on Job itself, the concrete class is looked up from the
        payload's job_class; called on a subclass, that subclass is used.
        """
        data = json.loads(payload)
        job_class = _load_job_class(data['job_class']) if cls is Job else cls
        return job_class.deserialize(data)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(job_id={self.job_id})>"


class TenantJobMixin:
    """
    Captures the active tenant at construction and restores it on perform.

    Must come before Job in the bases.
    """

    def __init__(self, *arguments):
        super().__init__(*arguments)
        self.tenant_for_job: Optional[str] = tenant.current() if tenant.is_configured else None

    def serialize(self) -> Dict[str, Any]:
        data = super().serialize()
        data[TENANT_KEY] = self.tenant_for_job
        return data

    @classmethod
    def deserialize(cls, data: Dict[str, Any]):
        job = super().deserialize(data)
        if TENANT_KEY in data:
            job.tenant_for_job = data[TENANT_KEY]
        return job

    def perform_now(self) -> Any:
        if self.tenant_for_job and tenant.is_configured:
            return tenant.switch_scoped(self.tenant_for_job, super().perform_now)
        return super().perform_now()
