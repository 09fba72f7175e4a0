"""
Built-in pause reason catalog.

Single source of truth for the pause reasons seeded into a fresh database.
Deployments can override or extend these through the YAML file referenced
by ``Settings.pause_reasons_config_path``.
"""

import copy
from typing import Any, Dict, List

from callpause.models.pause_models import PauseReasonDefinition


# ==============================================================================
# BUILT-IN PAUSE REASONS
# ==============================================================================

# max_duration_minutes of None means the pause never expires automatically
BUILTIN_PAUSE_REASONS: List[Dict[str, Any]] = [
    {
        "code": "BREAK",
        "label": "Short Break",
        "description": "Quick personal break",
        "color": "#ff9800",
        "icon": "coffee",
        "max_duration_minutes": 5,
        "sort_order": 1,
    },
    {
        "code": "LUNCH",
        "label": "Lunch Break",
        "description": "Lunch time break",
        "color": "#4caf50",
        "icon": "restaurant",
        "max_duration_minutes": 60,
        "sort_order": 2,
    },
    {
        "code": "MEETING",
        "label": "In Meeting",
        "description": "Attending a meeting",
        "color": "#2196f3",
        "icon": "groups",
        "max_duration_minutes": 120,
        "sort_order": 3,
    },
    {
        "code": "TRAINING",
        "label": "Training",
        "description": "Training session",
        "color": "#9c27b0",
        "icon": "school",
        "max_duration_minutes": 180,
        "sort_order": 4,
    },
    {
        "code": "PERSONAL",
        "label": "Personal Time",
        "description": "Personal matters",
        "color": "#e91e63",
        "icon": "person",
        "max_duration_minutes": 30,
        "sort_order": 5,
    },
    {
        "code": "TECHNICAL",
        "label": "Technical Issue",
        "description": "Resolving technical problems",
        "color": "#f44336",
        "icon": "build",
        "max_duration_minutes": None,
        "sort_order": 6,
    },
    {
        "code": "COACHING",
        "label": "Coaching Session",
        "description": "One-on-one coaching",
        "color": "#00bcd4",
        "icon": "support_agent",
        "max_duration_minutes": 60,
        "sort_order": 7,
    },
    {
        "code": "OTHER",
        "label": "Other",
        "description": "Other reason",
        "color": "#607d8b",
        "icon": "more_horiz",
        "max_duration_minutes": None,
        "sort_order": 99,
    },
]


def get_builtin_pause_reasons() -> Dict[str, PauseReasonDefinition]:
    """
    Get built-in pause reasons keyed by code.

    Returns a fresh copy so callers can merge overrides without mutating
    the module-level catalog.
    """
    return {
        entry["code"]: PauseReasonDefinition.model_validate(copy.deepcopy(entry))
        for entry in BUILTIN_PAUSE_REASONS
    }
