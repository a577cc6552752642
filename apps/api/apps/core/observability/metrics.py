"""
Metrics instrumentation (Prometheus client).
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry for the chat API.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        """Initialize metrics registry."""
        self._setup_metrics()

    def _setup_metrics(self):
        """Setup all application metrics."""

        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.exceptions_total = Counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        self.api_errors_total = Counter(
            'api_errors_total',
            'API error responses by error code',
            ['code', 'status']
        )

        # ===================================================================
        # Chat Metrics
        # ===================================================================
        self.chat_conversations_ensured_total = Counter(
            'chat_conversations_ensured_total',
            'EnsureConversation outcomes',
            ['result']  # created, existing, race
        )

        self.chat_messages_appended_total = Counter(
            'chat_messages_appended_total',
            'Messages durably appended',
            ['sender_role']
        )

        self.chat_message_append_duration_seconds = Histogram(
            'chat_message_append_duration_seconds',
            'Duration of the durable message append',
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
        )

        self.chat_broadcasts_total = Counter(
            'chat_broadcasts_total',
            'Relay publish attempts',
            ['mode', 'result']  # mode: inline|async, result: success|failure
        )

        self.chat_relay_auth_total = Counter(
            'chat_relay_auth_total',
            'Relay subscription authorization decisions',
            ['result']  # granted, denied
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.chat_message_append_duration_seconds)
            def append_message(...):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    histogram_metric.observe(time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
