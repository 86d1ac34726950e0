"""
Gunicorn configuration for Goalpost production deployment.

Uses Uvicorn workers for async ASGI support. Each worker process builds its
own app, so each holds exactly one cache client and one database pool.
"""

import multiprocessing
import os

# ─── Server Socket ───────────────────────────────────────────
bind = f"0.0.0.0:{os.getenv('PORT', os.getenv('APP_PORT', '8000'))}"

# ─── Worker Processes ────────────────────────────────────────
worker_class = "uvicorn.workers.UvicornWorker"

# (2 × CPU cores) + 1, capped by WEB_CONCURRENCY
workers = min(multiprocessing.cpu_count() * 2 + 1, int(os.getenv("WEB_CONCURRENCY", "4")))

# Concurrency comes from asyncio
threads = 1

# ─── Timeouts ────────────────────────────────────────────────
# Requests are plain CRUD plus cache round trips
timeout = int(os.getenv("GUNICORN_TIMEOUT", "30"))

# Leaves the lifespan shutdown time to close the cache client
graceful_timeout = 30

keepalive = 5

# ─── Worker Lifecycle ────────────────────────────────────────
max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "1000"))
max_requests_jitter = 50

# Async engines and Redis pools must be created after fork
preload_app = False

# ─── Logging ─────────────────────────────────────────────────
# structlog formats app logs; LoggingMiddleware covers per-request lines
accesslog = None
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

# ─── Server Mechanics ────────────────────────────────────────
forwarded_allow_ips = "*"
reuse_port = True
