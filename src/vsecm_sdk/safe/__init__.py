"""
vsecm_sdk.safe

VSecM Safe client package.

Responsibilities:
- Build one-shot mTLS channels to VSecM Safe.
- Fetch and store secrets over those channels.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Sync loops should depend on `safe.client.SafeClient`, not on httpx or the channel directly.
