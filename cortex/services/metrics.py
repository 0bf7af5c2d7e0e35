from prometheus_client import Counter, Histogram

# --- Provider Metrics ---

# Counter for tracking calls into each capability provider.
# Labels:
# - provider_id: The id of the capability provider.
# - phase: "activation", "intervention" or "feedback".
PROVIDER_CALLS_TOTAL = Counter(
    "capability_provider_calls_total",
    "Total number of calls to each capability provider.",
    ["provider_id", "phase"],
)

# Counter for tracking failures in each provider. Incremented by the manager's
# isolation wrappers; a failure never aborts the surrounding pass.
# Labels:
# - provider_id: The id of the capability provider.
# - phase: "activation", "intervention" or "feedback".
PROVIDER_FAILURES_TOTAL = Counter(
    "capability_provider_failures_total",
    "Total number of failures for each capability provider.",
    ["provider_id", "phase"],
)

# Histogram for tracking the latency of provider calls.
# Labels:
# - provider_id: The id of the capability provider.
# - phase: "activation" or "intervention".
PROVIDER_LATENCY_SECONDS = Histogram(
    "capability_provider_latency_seconds",
    "Latency of capability provider calls.",
    ["provider_id", "phase"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1, 2.5, 5, 10],
)

# --- Orchestration Metrics ---

# Counter for orchestration passes.
# Labels:
# - result: "interventions", "empty", "cooldown" or "error".
ORCHESTRATION_PASSES_TOTAL = Counter(
    "orchestration_passes_total",
    "Total number of orchestration passes by result.",
    ["result"],
)

# Histogram of how many providers were admitted per pass.
ORCHESTRATION_SELECTED_PROVIDERS = Histogram(
    "orchestration_selected_providers",
    "Number of providers admitted per orchestration pass.",
    buckets=[0, 1, 2, 3, 4, 5, 8, 13],
)

# Histogram of the cognitive load consumed per pass (budget is 1.0).
ORCHESTRATION_LOAD_USED = Histogram(
    "orchestration_load_used",
    "Cognitive load consumed by admitted providers per pass.",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

# Histogram for end-to-end pass duration.
ORCHESTRATION_DURATION_SECONDS = Histogram(
    "orchestration_duration_seconds",
    "Duration of a full orchestration pass.",
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 2.5, 5, 10, 30],
)

# --- Feedback Metrics ---

# Counter for feedback events.
# Labels:
# - outcome: "success", "failure" or "partial".
FEEDBACK_EVENTS_TOTAL = Counter(
    "capability_feedback_events_total",
    "Total number of feedback events by outcome.",
    ["outcome"],
)

# --- Error Metrics ---

# Counter for errors logged through the error handler.
# Labels:
# - component: Component that observed the error.
# - category: Error category.
# - severity: Error severity.
ORCHESTRATOR_ERRORS_TOTAL = Counter(
    "orchestrator_errors_total",
    "Total number of errors observed by the orchestration runtime.",
    ["component", "category", "severity"],
)
