import os


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw is not None else int(default)
    except (TypeError, ValueError):
        return int(default)


# Loaded automatically by gunicorn from the project root.
wsgi_app = os.getenv("GUNICORN_APP", "app:create_app()")
bind = os.getenv("GUNICORN_BIND", f"0.0.0.0:{_as_int('PORT', 8000)}")

requested_workers = _as_int("GUNICORN_WORKERS", _as_int("WEB_CONCURRENCY", 2))
requested_threads = _as_int("GUNICORN_THREADS", 4)
workers = max(1, min(requested_workers, 8))
threads = max(1, min(requested_threads, 8))
worker_class = os.getenv("GUNICORN_WORKER_CLASS", "gthread")

timeout = _as_int("GUNICORN_TIMEOUT", 30)
graceful_timeout = _as_int("GUNICORN_GRACEFUL_TIMEOUT", 20)
keepalive = _as_int("GUNICORN_KEEPALIVE", 5)

max_requests = _as_int("GUNICORN_MAX_REQUESTS", 1000)
max_requests_jitter = _as_int("GUNICORN_MAX_REQUESTS_JITTER", 100)

preload_app = os.getenv("GUNICORN_PRELOAD", "false").lower() == "true"

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", os.getenv("LOG_LEVEL", "info")).lower()
