"""Prometheus metrics exposed at /metrics."""

from prometheus_client import Counter, Histogram

ai_commands_executed_total = Counter(
    "moodboard_ai_commands_executed_total",
    "Canvas commands applied by /ai/execute",
    ["action"],
)

ai_requests_total = Counter(
    "moodboard_ai_requests_total",
    "AI endpoint calls",
    ["endpoint", "status"],
)

openai_latency_seconds = Histogram(
    "moodboard_openai_latency_seconds",
    "OpenAI call latency in seconds",
    ["operation"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

images_generated_total = Counter(
    "moodboard_images_generated_total",
    "Image generation attempts",
    ["status"],
)

webhook_events_total = Counter(
    "moodboard_stripe_webhook_events_total",
    "Stripe webhook events received",
    ["event_type", "status"],
)

oauth_connections_total = Counter(
    "moodboard_oauth_connections_total",
    "OAuth callback outcomes",
    ["provider", "status"],
)

http_request_duration_seconds = Histogram(
    "moodboard_http_request_duration_seconds",
    "HTTP request latency by route template",
    ["method", "route", "status_code"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
