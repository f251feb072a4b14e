"""Gunicorn configuration for the webmention receiver.

Loaded by the receiver process (see blogwatch.supervisor.run_receiver);
``bind`` and ``workers`` are overridden from the webmention_receiver
section of config.yml. Logs go to stdout/stderr next to the watch loop's.
"""

bind = "0.0.0.0:5000"

# Each worker holds its own PublishedDocumentIndex
workers = 1
worker_class = "sync"
timeout = 30
# Shorter than ReceiverProcess.stop so workers finish before SIGKILL
graceful_timeout = 5
keepalive = 2

accesslog = "-"
errorlog = "-"
loglevel = "info"

# %(h)s remote address, %(r)s request line, %(s)s status, %(D)s request time (us)
access_log_format = '%(h)s %(t)s "%(r)s" %(s)s %(b)s "%(a)s" %(D)s'


def when_ready(server):
    """Called just after the server is started."""
    server.log.info("Webmention receiver is ready to accept connections")


def on_exit(server):
    """Called just before exiting Gunicorn."""
    server.log.info("Shutting down webmention receiver")


def worker_abort(worker):
    worker.log.error("Receiver worker received SIGABRT signal - likely timeout")


preload_app = False
reload = False
daemon = False
pidfile = None

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
            'stream': 'ext://sys.stdout'
        },
        'error_console': {
            'class': 'logging.StreamHandler',
            'formatter': 'generic',
            'stream': 'ext://sys.stderr'
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
