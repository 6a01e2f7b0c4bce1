"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Structured logging
- Contention retry with backoff
- YAML configuration loading and hot reload
"""
