"""
Shared Kernel Module
====================

Shared infrastructure and domain elements used across the pipeline stages
(admission, classification, alerting).

- Submission record shared by every stage
- Logging, contention retry and YAML configuration management

Stage-specific business rules do not belong here.
"""
