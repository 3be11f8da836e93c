# config.py

import copy
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────
# CONFIG PAR DÉFAUT
# Constantes métier relevées dans les dashboards.
# Les changer est une décision produit, pas un bugfix.
# ─────────────────────────────────────────

DEFAULT_ENGINE_CONFIG = {
    "engagement": {
        # (seuil en minutes, points) : gap < seuil → points
        "recency_breakpoints": [(1440, 25), (4320, 15), (10080, 10)],
        "recency_floor": 5,
        # (touchpoints strictement supérieurs à, points)
        "frequency_breakpoints": [(10, 25), (5, 20), (2, 15)],
        "frequency_floor": 10,
        "cross_platform_many": 25,      # > 2 sources
        "cross_platform_two": 20,       # == 2 sources
        "cross_platform_floor": 10,
        "conversion_points": 25,
        "high_threshold": 70,
        "medium_threshold": 40,
    },
    "certainty": {
        # Certitude d'attribution : base + cinq facteurs plafonnés
        "base": 0.7,
        "cap": 0.98,
        "factor_floor": 0.05,
        "factor_cap": 0.2,
        "completeness_step": 0.05,
        "diversity_multi": 0.2,         # >= 2 sources
        "diversity_single": 0.1,
        "clarity_many_touchpoints": 5,
        "clarity_many": 0.2,
        "clarity_base": 0.1,            # 2 touchpoints, puis + clarity_step par touchpoint
        "clarity_step": 0.03,
        "channel_influence": {"calendly": 0.85, "close": 0.75, "typeform": 0.6},
        "default_influence": 0.5,
        "signal_weights": {"meeting": 0.05, "activity": 0.03, "note": 0.03},
        "default_signal_weight": 0.02,
        "cross_platform_two": 0.15,     # lead_source cite 2 plateformes
        "cross_platform_three": 0.2,
    },
    "event_scores": {
        "activity": 5,
        "note": 5,
        "form": 5,
        "meeting": 10,
        "deal": 15,
    },
    "stages": {
        "initial_stage": "lead",
        "closed_won_statuses": ["customer", "closed-won", "closed_won", "won"],
        "disqualified_statuses": ["disqualified"],
    },
    "metrics": {
        "response_time_benchmark_minutes": 60,
        "max_response_window_minutes": 1440,
        # diviseur provisoire relevé dans l'UI (coût par solution call)
        "cost_per_solution_call_divisor": 4,
        "closer_slots": None,           # créneaux closer disponibles
        "answered_statuses": ["completed", "answered"],
        "response_activity_types": ["email", "call", "text"],
    },
}


def get_engine_config(overrides: Optional[dict] = None) -> dict:
    """
    Retourne la config du moteur.
    Les overrides sont fusionnés en profondeur sur les defaults,
    sans jamais modifier DEFAULT_ENGINE_CONFIG.
    """
    config = copy.deepcopy(DEFAULT_ENGINE_CONFIG)

    if not overrides:
        return config

    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            logger.debug(f"[config] Section {section} remplacée entièrement")
            config[section] = values

    return config
