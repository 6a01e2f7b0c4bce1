"""
Persona Rule Presets
====================

Rule sets shipped with the library. Tenants without their own rules get
the GCC preset.
"""

from typing import Dict, List

from feedback_core.classification.domain.entities import PersonaRule

GCC_COUNTRIES = ["SA", "AE", "KW", "QA", "BH", "OM"]

_GCC_RULES = [
    {
        "id": 1,
        "persona_id": "GCC_NAT_MILL_01",
        "label": "GCC National Millennial",
        "score": 80,
        "conditions": [
            {"field": "country", "operator": "in", "value": GCC_COUNTRIES},
            {"field": "isCitizen", "operator": "==", "value": True},
            {"field": "age", "operator": "between", "value": [25, 40]},
        ],
    },
    {
        "id": 2,
        "persona_id": "GCC_NAT_AFFL_01",
        "label": "GCC Affluent National",
        "score": 85,
        "conditions": [
            {"field": "isCitizen", "operator": "==", "value": True},
            {"field": "cityTier", "operator": "==", "value": "Tier1"},
            {"field": "income", "operator": ">=", "value": 25000},
        ],
    },
    {
        "id": 3,
        "persona_id": "GCC_NAT_GENZ_01",
        "label": "GCC National Gen Z",
        "score": 75,
        "conditions": [
            {"field": "isCitizen", "operator": "==", "value": True},
            {"field": "age", "operator": "between", "value": [18, 24]},
        ],
    },
    {
        "id": 4,
        "persona_id": "GCC_EXPAT_PRO_01",
        "label": "GCC Expat Professional",
        "score": 70,
        "conditions": [
            {"field": "isCitizen", "operator": "==", "value": False},
            {"field": "employmentSector", "operator": "==", "value": "private"},
            {"field": "income", "operator": ">=", "value": 10000},
        ],
    },
    {
        "id": 5,
        "persona_id": "GCC_EXPAT_BLUE_01",
        "label": "GCC Expat Blue Collar",
        "score": 60,
        "conditions": [
            {"field": "isCitizen", "operator": "==", "value": False},
            {"field": "income", "operator": "<", "value": 5000},
        ],
    },
    {
        "id": 6,
        "persona_id": "GCC_FAMILY_01",
        "label": "GCC National Family",
        "score": 65,
        "conditions": [
            {"field": "isCitizen", "operator": "==", "value": True},
            {"field": "familyStatus", "operator": "==", "value": "married_with_children"},
        ],
    },
    {
        "id": 7,
        "persona_id": "GCC_URBAN_01",
        "label": "GCC Urban Resident",
        "score": 50,
        "conditions": [
            {"field": "cityTier", "operator": "==", "value": "Tier1"},
        ],
    },
]

GCC_RULES: List[PersonaRule] = [PersonaRule(**rule) for rule in _GCC_RULES]

PRESETS: Dict[str, List[PersonaRule]] = {
    "gcc": GCC_RULES,
}


def get_preset(name: str) -> List[PersonaRule]:
    """Rules of a named preset."""
    if name not in PRESETS:
        raise KeyError(f"Unknown persona preset: {name}")
    return list(PRESETS[name])
