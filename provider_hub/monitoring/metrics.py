"""Prometheus metrics for provider health and transaction dispatch"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST, start_http_server

# Provider Health Metrics
provider_failover_decisions = Counter(
    'provider_failover_decisions_total',
    'Total number of failover policy decisions',
    ['decision']
)

provider_active = Gauge(
    'provider_active',
    'Whether an adapter of the given kind is currently active',
    ['kind']
)

adapter_connect_errors = Counter(
    'adapter_connect_errors_total',
    'Total number of adapter construction failures',
    ['kind', 'error_type']
)

lifecycle_events = Counter(
    'provider_lifecycle_events_total',
    'Total number of lifecycle events received from the active adapter',
    ['event']
)

provider_reloads = Counter(
    'provider_reloads_total',
    'Total number of supervisor reload cycles',
    ['outcome']
)

# Transaction Metrics
transactions_submitted = Counter(
    'transactions_submitted_total',
    'Total number of transactions submitted',
    ['contract_type', 'method']
)

transactions_failed = Counter(
    'transactions_failed_total',
    'Total number of failed transaction dispatches',
    ['error_kind']
)

transaction_submit_latency = Histogram(
    'transaction_submit_latency_seconds',
    'Transaction submission latency in seconds',
    ['contract_type'],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)
)

pending_transactions = Gauge(
    'pending_transactions',
    'Number of in-flight transactions across all accounts'
)


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format.

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest()


def get_content_type() -> str:
    """
    Get the content type for Prometheus metrics.

    Returns:
        Content type string
    """
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default 9090)
    """
    start_http_server(port)
