"""
vsecm_sdk.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- Correlation-id propagation for consistent log enrichment.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Metrics/tracing exporters can be added here without touching sync or exchange logic.
