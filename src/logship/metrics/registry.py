"""
Prometheus metrics for the batch transport.

Metrics register on the global REGISTRY at import time; expose them with
prometheus_client.start_http_server() in the host process if wanted.
"""

from prometheus_client import Counter, Gauge, Histogram

RECORDS_ENQUEUED_TOTAL = Counter(
    "logship_records_enqueued_total",
    "Total number of log records accepted by enqueue",
    ["transport_id"],
)

RECORDS_DROPPED_TOTAL = Counter(
    "logship_records_dropped_total",
    "Records dropped without delivery (failed validation or enqueued after close)",
    ["transport_id"],
)

BATCHES_SENT_TOTAL = Counter(
    "logship_batches_sent_total",
    "Batch delivery attempts by path (flush|retry) and outcome",
    ["transport_id", "path", "outcome"],
)

RECORDS_BACKED_UP_TOTAL = Counter(
    "logship_records_backed_up_total",
    "Records written to the local backup file, by failure reason",
    ["transport_id", "reason"],
)

BACKUP_IO_ERRORS_TOTAL = Counter(
    "logship_backup_io_errors_total",
    "Filesystem failures while writing the backup file",
    ["transport_id"],
)

SEND_LATENCY_MS = Histogram(
    "logship_send_latency_ms",
    "Batch send latency in milliseconds",
    ["transport_id", "path"],
    buckets=[1, 2.5, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

QUEUE_DEPTH = Gauge(
    "logship_queue_depth",
    "Records waiting in memory, by queue (ingestion|retry)",
    ["transport_id", "queue"],
)

INFLIGHT_BATCHES = Gauge(
    "logship_inflight_batches",
    "Batches currently being sent by the flush scheduler",
    ["transport_id"],
)


class MetricsRegistry:
    """Groups the transport metrics for structured access."""

    records_enqueued_total = RECORDS_ENQUEUED_TOTAL
    records_dropped_total = RECORDS_DROPPED_TOTAL
    batches_sent_total = BATCHES_SENT_TOTAL
    records_backed_up_total = RECORDS_BACKED_UP_TOTAL
    backup_io_errors_total = BACKUP_IO_ERRORS_TOTAL
    send_latency_ms = SEND_LATENCY_MS
    queue_depth = QUEUE_DEPTH
    inflight_batches = INFLIGHT_BATCHES


# Singleton instance
metrics_registry = MetricsRegistry()
