"""Simulation parameters for marketing-site traffic.

Each visitor returns a few times (page reloads, later sessions), sees the
active experiments on every visit, and sometimes converts. Conversion
rates are per visit, roughly matching a B2B landing page.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SimulationConfig:
    num_visitors: int = 2000
    # Visits per visitor, each one re-reads the persisted assignments
    min_visits: int = 1
    max_visits: int = 4
    # Number of days the simulation spans
    days: int = 14
    # Random seed for reproducibility
    seed: int = 42

    # Per-visit conversion probabilities
    prob_cta_click: float = 0.12
    prob_form_submission: float = 0.03
    form_submission_value: float = 1.0
