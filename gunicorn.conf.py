"""Gunicorn production configuration for the procurement API."""
import multiprocessing
import os

wsgi_app = "app.main:app"
chdir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "backend")

bind = os.getenv("BIND", "0.0.0.0:8000")
workers = int(os.getenv("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 120
keepalive = 5
max_requests = 1000
max_requests_jitter = 100
preload_app = True
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
