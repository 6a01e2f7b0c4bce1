"""
Alert Correlation Engine
========================

Converts a classified submission into a deduplicated close-the-loop alert.

Responsibilities:
- Decide alert/no-alert from sentiment, emotion and keyword thresholds
- Keep at most one open alert per correlation key
- Link a follow-up ticket exactly once, retrying out-of-band on failure
"""
