from prometheus_client import Counter, Histogram

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests",
    labelnames=("service", "method", "endpoint", "status_code"),
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=("service", "method", "endpoint"),
    buckets=(0.05, 0.1, 0.2, 0.5, 1, 2, 5, 10),
)

CALCULATIONS_CREATED = Counter(
    "calculations_created_total",
    "Calculations persisted, split by root/child",
    labelnames=("service", "kind"),
)

CALCULATION_ERRORS = Counter(
    "calculation_errors_total",
    "Domain errors returned to callers",
    labelnames=("service", "error"),
)


def record_calculation_created(service: str, kind: str) -> None:
    CALCULATIONS_CREATED.labels(service=service, kind=kind).inc()


def record_calculation_error(service: str, error: str) -> None:
    CALCULATION_ERRORS.labels(service=service, error=error).inc()
