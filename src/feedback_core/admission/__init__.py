"""
Admission Controller
====================

Decides whether a submission may be accepted under its form's quotas and
counts accepted submissions exactly once per active quota period.
"""
