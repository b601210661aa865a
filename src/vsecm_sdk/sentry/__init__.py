"""
vsecm_sdk.sentry

Long-running and init-time loops built on the Safe client.

Responsibilities:
- Continuous secret synchronization (sidecar).
- Readiness waiting (init container).
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Both loops are strictly sequential; no two Safe calls from one loop overlap.
