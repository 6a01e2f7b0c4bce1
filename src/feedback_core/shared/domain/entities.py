"""
Shared Domain Entities
======================

The submission record that flows through every pipeline stage.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class Submission:
    """
    One survey response event.

    Owned by the host. The core reads ``data``, ``customer_id`` and
    ``respondent`` and writes only ``analysis``.
    """

    id: str
    tenant_id: str
    form_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    customer_id: Optional[str] = None
    # Flat attribute record from the CRM (age, country, isCitizen, ...)
    respondent: Dict[str, Any] = field(default_factory=dict)
    analysis: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Normalise identifiers to strings."""
        self.id = str(self.id)
        self.tenant_id = str(self.tenant_id) if self.tenant_id is not None else ""
        self.form_id = str(self.form_id) if self.form_id is not None else ""
        if self.customer_id is not None:
            self.customer_id = str(self.customer_id)
        if self.data is None:
            self.data = {}
        if self.respondent is None:
            self.respondent = {}
