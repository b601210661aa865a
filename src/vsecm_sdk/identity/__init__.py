"""
vsecm_sdk.identity

SPIFFE identity package.

Responsibilities:
- Classify SPIFFE IDs into workload / clerk / safe roles.
- Load the local X.509 SVID material from the identity source.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Nothing in this package performs network I/O; the safe client builds on top of it.
