import os
import importlib
from celery import Celery

# Factory the worker builds its Flask app from, e.g. "app:create_app"
FLASK_FACTORY = os.getenv("FLASK_FACTORY", "app:create_app")


def _load_flask_app():
    module_name, _, factory_name = FLASK_FACTORY.partition(":")
    module = importlib.import_module(module_name)
    factory = getattr(module, factory_name or "create_app", None)
    if factory is None:
        raise RuntimeError(f"Could not find factory '{FLASK_FACTORY}'")
    return factory()


celery = Celery(__name__, include=["scanner.tasks"])
celery.conf.update(
    broker_url=os.getenv("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0"),
    result_backend=os.getenv("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/1"),
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=os.getenv("CELERY_TIMEZONE", "UTC"),
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    task_default_queue="scanner_default",
    task_routes={"scanner.tasks.*": {"queue": "scanner_default"}},
    beat_schedule={
        # sessions live in web-process memory; a restart strands their scans as 'running'
        "reconcile-stale-scans-every-10m": {
            "task": "scanner.tasks.reconcile_stale_scans",
            "schedule": 600.0,
        },
    },
)


class AppContextTask(celery.Task):
    """Runs every task inside a Flask app context (db session, config, logger)."""
    _flask_app = None

    def __call__(self, *args, **kwargs):
        if AppContextTask._flask_app is None:
            AppContextTask._flask_app = _load_flask_app()
        with AppContextTask._flask_app.app_context():
            return self.run(*args, **kwargs)


celery.Task = AppContextTask
