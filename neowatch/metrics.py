from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "http_status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)

CACHE_HITS = Counter("neo_cache_hits_total", "Cache lookups served from memory")
CACHE_MISSES = Counter("neo_cache_misses_total", "Cache lookups that ran a producer")

UPSTREAM_REQUESTS = Counter(
    "neo_upstream_requests_total",
    "Requests sent to the NASA NeoWs API",
    ["endpoint", "outcome"],
)
UPSTREAM_LATENCY = Histogram(
    "neo_upstream_latency_seconds",
    "NASA NeoWs request latency",
    ["endpoint"],
)
