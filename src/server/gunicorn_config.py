"""Gunicorn configuration for the fedbridge webmention server.

All logs are sent to stdout/stderr for Docker visibility via
`docker compose logs`.
"""

import sys

bind = "0.0.0.0:5000"

# Receiving blocks on the source fetch (bounded by fetch_timeout), so use a
# few threads rather than a single sync worker.
workers = 1
worker_class = "gthread"
threads = 4
timeout = 30
keepalive = 2

accesslog = "-"
errorlog = "-"
loglevel = "info"

# %(h)s remote IP, %(r)s request line, %(s)s status, %(b)s response size,
# %(a)s User-Agent, %(D)s request time in microseconds
access_log_format = (
    '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s '
    '"%(f)s" "%(a)s" %(D)s %(p)s'
)

capture_output = True
enable_stdio_inheritance = True


def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info("Starting Gunicorn for fedbridge")


def when_ready(server):
    """Called just after the server is started."""
    server.log.info("Gunicorn server is ready to accept webmentions")


def on_exit(server):
    """Called just before exiting Gunicorn."""
    server.log.info("Shutting down Gunicorn")


def worker_abort(worker):
    """Called when a worker receives a SIGABRT signal."""
    worker.log.error("Worker received SIGABRT signal - likely timeout")


preload_app = False
reload = False
daemon = False
pidfile = None

# Webmention requests are small form posts
limit_request_line = 4096
limit_request_fields = 100
limit_request_field_size = 8190

logconfig_dict = {
    'version': 1,
    'disable_existing_loggers': False,
    'root': {
        'level': 'INFO',
        'handlers': ['console']
    },
    'loggers': {
        'gunicorn.error': {
            'level': 'INFO',
            'handlers': ['error_console'],
            'propagate': False,
            'qualname': 'gunicorn.error'
        },
        'gunicorn.access': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False,
            'qualname': 'gunicorn.access'
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'generic',
            'stream': sys.stdout
        },
        'error_console': {
            'class': 'logging.StreamHandler',
            'formatter': 'generic',
            'stream': sys.stderr
        },
    },
    'formatters': {
        'generic': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S',
            'class': 'logging.Formatter'
        }
    }
}
