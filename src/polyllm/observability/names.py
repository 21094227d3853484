# src/polyllm/observability/names.py

"""Standard metric names for polyllm observability.

Use these constants instead of hardcoded strings for consistency
across the codebase.

Note: All duration metrics are in milliseconds by convention.
Units are handled by the metrics backend (e.g., converted to seconds in Prometheus).
"""

# ============================================================================
# Generation Metrics
# ============================================================================

# Duration
LLM_GENERATE_DURATION = "llm_generate_duration"

# Counters
LLM_REQUESTS_TOTAL = "llm_requests_total"
LLM_ERRORS_TOTAL = "llm_errors_total"

# Counters (token usage - monotonic over time for cost/rate tracking)
LLM_TOKENS_PROMPT = "llm_tokens_prompt"
LLM_TOKENS_COMPLETION = "llm_tokens_completion"
LLM_TOKENS_TOTAL = "llm_tokens_total"


# ============================================================================
# Streaming Metrics
# ============================================================================

# Duration
LLM_STREAM_DURATION = "llm_stream_duration"
LLM_STREAM_TIME_TO_FIRST_CHUNK = "llm_stream_time_to_first_chunk"

# Counters
LLM_STREAMS_TOTAL = "llm_streams_total"
LLM_STREAM_CHUNKS_TOTAL = "llm_stream_chunks_total"
