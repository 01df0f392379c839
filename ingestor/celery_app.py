"""Celery application used to trigger scrapes and sweeps from other processes."""

from __future__ import annotations

from celery import Celery

from .config import CeleryConfig


def create_celery_app(config: CeleryConfig | None = None) -> Celery:
    config = config or CeleryConfig.from_env()
    app = Celery(
        "ingestor",
        broker=config.broker_url,
        backend=config.result_backend,
        include=["ingestor.tasks"],
    )
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_always_eager=config.always_eager,
        # Eager task errors reach the caller
        task_eager_propagates=True,
    )
    return app


celery_app = create_celery_app()


__all__ = ["celery_app", "create_celery_app"]
