from prometheus_client import Counter, Histogram

REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)
RATE_LIMITED_TOTAL = Counter(
    "rate_limited_total",
    "Total requests rate limited",
    ["reason"],
)
PROVIDER_ATTEMPTS_TOTAL = Counter(
    "provider_attempts_total",
    "Provider calls by outcome",
    ["provider", "outcome"],
)
PROVIDER_SKIPS_TOTAL = Counter(
    "provider_skips_total",
    "Candidates skipped without a call",
    ["provider", "reason"],
)
PROVIDER_STATE_CHANGES_TOTAL = Counter(
    "provider_state_changes_total",
    "Cooldown and disable transitions",
    ["provider", "state"],
)
ROUTING_FAILURES_TOTAL = Counter(
    "routing_failures_total",
    "Requests the router could not serve",
    ["reason"],
)
ANALYSIS_FALLBACK_TOTAL = Counter(
    "analysis_fallback_total",
    "Analyses answered with the fallback response",
)
CACHE_LOOKUPS_TOTAL = Counter(
    "cache_lookups_total",
    "Result cache lookups",
    ["result"],
)
JOBS_TOTAL = Counter(
    "jobs_total",
    "Async analysis jobs by terminal status",
    ["status"],
)
PROVIDER_LATENCY = Histogram(
    "provider_request_duration_seconds",
    "Provider call latency in seconds",
    ["provider"],
)
