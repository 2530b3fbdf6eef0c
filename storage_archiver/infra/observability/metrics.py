from prometheus_client import Counter, Histogram, make_asgi_app

# Labelled by route template rather than raw path to keep cardinality low.
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

ARCHIVE_RUNS = Counter(
    "archive_runs_total",
    "Archive runs by outcome",
    ["outcome"],
)

ARCHIVE_FILES = Counter(
    "archive_files_total",
    "Source files processed by archive runs",
    ["status"],
)

ARCHIVE_DURATION = Histogram(
    "archive_duration_seconds",
    "Wall-clock duration of archive runs in seconds",
    buckets=(0.1, 0.5, 1, 5, 15, 60, 300, 900, 3600),
)

metrics_app = make_asgi_app()
