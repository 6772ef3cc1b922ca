"""Traffic gating and weighted variant selection.

Participation is hash-based: given the same (experiment_id, visitor_id)
pair, the gate value is always the same, so a visitor's in/out decision
is reproducible. Variant choice is NOT: it uses a fresh uniform draw
supplied by the caller, so a visitor's variant cannot be recomputed from
identity alone and must be persisted once chosen.
"""

import hashlib

from src.ab.experiment import ExperimentDefinition, VariantDefinition


def traffic_gate_value(experiment_id: str, visitor_id: str) -> float:
    """Map (experiment_id, visitor_id) to a stable value in [0.0, 1.0).

    Uses the first 8 bytes of SHA-256 as an unsigned int, normalized by 2**64.
    """
    hash_input = f"{experiment_id}:{visitor_id}"
    hash_bytes = hashlib.sha256(hash_input.encode()).digest()
    return int.from_bytes(hash_bytes[:8], "big") / (2**64)


def in_traffic(experiment: ExperimentDefinition, gate_value: float) -> bool:
    # Strict comparison: 0.0 allocation excludes every visitor, 1.0 includes all
    return gate_value < experiment.traffic_allocation


def select_variant(variants: list[VariantDefinition], r: float) -> VariantDefinition:
    """Pick the first variant whose cumulative weight reaches ``r``.

    Weights are used as authored. When they sum to less than 1.0 and ``r``
    lands in the remainder, the first variant is returned, which biases
    under-weighted experiments toward variant zero.
    """
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.weight
        if r <= cumulative:
            return variant

    return variants[0]
