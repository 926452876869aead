"""arq worker settings module.

Import path for arq CLI: arq habitz.workers.settings.WorkerSettings
"""

from __future__ import annotations

from arq.connections import RedisSettings

from habitz.config import get_settings
from habitz.workers.scheduler import SchedulerWorkerSettings


class WorkerSettings(SchedulerWorkerSettings):
    """Scheduler settings bound to the configured arq Redis."""

    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)


__all__ = ["WorkerSettings"]
