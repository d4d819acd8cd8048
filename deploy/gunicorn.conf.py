import multiprocessing
import os

# Booking writes lock the organization row, so several workers are safe on
# PostgreSQL. Keep CLASSBOOK_WORKERS=1 with SQLite.
bind = os.getenv("CLASSBOOK_BIND", "127.0.0.1:8000")
wsgi_app = "classbook.main:app"
workers = int(os.getenv("CLASSBOOK_WORKERS", (multiprocessing.cpu_count() * 2) + 1))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = int(os.getenv("CLASSBOOK_TIMEOUT", 60))
graceful_timeout = 30
keepalive = 5
loglevel = os.getenv("CLASSBOOK_LOG_LEVEL", "info")
accesslog = "-"
errorlog = "-"
