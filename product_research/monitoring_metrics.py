from prometheus_client import Counter, Histogram

SEARCH_REQUESTS = Counter("product_search_requests_total", "Search requests", ["provider"])
SEARCH_ERRORS   = Counter("product_search_errors_total",   "Search errors",   ["provider", "kind"])
SEARCH_LATENCY  = Histogram("product_search_request_seconds", "Search latency", ["provider"])
EXTRACT_REQUESTS = Counter("product_extract_requests_total", "Extract requests", ["category"])
EXTRACT_ERRORS   = Counter("product_extract_errors_total",   "Extract errors",   ["category"])
RUNS_TOTAL = Counter("product_research_runs_total", "Research runs by final status", ["mode", "status"])
