"""Experiment definitions and the in-memory registry.

Each experiment has a unique ID, a list of variants with relative weights,
the fraction of traffic that participates at all, and a metric label.
The registry is static: it is built once at deploy time and only read.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class VariantDefinition:
    id: str
    name: str
    weight: float  # Relative weight, not normalized
    config: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.weight < 0:
            raise ValueError(f"Variant weight must be non-negative, got {self.weight}")


@dataclass(frozen=True)
class ExperimentDefinition:
    id: str
    name: str
    variants: list[VariantDefinition]
    description: str = ""
    # Probability (0.0 to 1.0) that a visitor participates at all
    traffic_allocation: float = 1.0
    is_active: bool = True
    target_metric: str = "conversion"

    def __post_init__(self):
        if not self.variants:
            raise ValueError("Experiment must have at least 1 variant")
        ids = [v.id for v in self.variants]
        if len(ids) != len(set(ids)):
            raise ValueError("Variant ids must be unique")
        if not 0.0 <= self.traffic_allocation <= 1.0:
            raise ValueError(
                f"Traffic allocation must be within [0, 1], got {self.traffic_allocation}"
            )

    def find_variant(self, variant_id: str) -> VariantDefinition | None:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None


class ExperimentRegistry:
    """Read-only catalog of experiment definitions keyed by id."""

    def __init__(self, experiments: list[ExperimentDefinition]):
        self._experiments: dict[str, ExperimentDefinition] = {}
        for exp in experiments:
            if exp.id in self._experiments:
                raise ValueError(f"Duplicate experiment id: {exp.id}")
            self._experiments[exp.id] = exp

    def list_active(self) -> list[ExperimentDefinition]:
        return [e for e in self._experiments.values() if e.is_active]

    def find(self, experiment_id: str) -> ExperimentDefinition | None:
        return self._experiments.get(experiment_id)

    def __iter__(self):
        return iter(self._experiments.values())

    def __len__(self) -> int:
        return len(self._experiments)


# Experiments currently running on the marketing site
DEFAULT_EXPERIMENTS = [
    ExperimentDefinition(
        id="hero_headline_v1",
        name="Hero Headline Test",
        description="Testing different hero headlines for conversion optimization",
        traffic_allocation=1.0,
        target_metric="conversion",
        variants=[
            VariantDefinition(
                id="control",
                name="Control - Scale your team in India without the complexity",
                weight=1.0,
                config={
                    "headline": "Scale your team in India without the complexity",
                    "animatedWords": ["Scale", "Build"],
                    "subheadline": (
                        "Hire top Indian talent in 48 hours with our EOR services. "
                        "40% cost savings, 100% compliance, India-first expertise."
                    ),
                    "ctaText": "Get Started",
                    "ctaColor": "cta-500",
                },
            ),
            VariantDefinition(
                id="variant_a",
                name="Variant A - Speed Focus",
                weight=0.0,
                config={
                    "headline": "Hire in India in 48 Hours - No Entity Required",
                    "subheadline": (
                        "Skip 6-month entity setup. Start hiring immediately with our "
                        "EOR services. 40% cost savings, 100% compliance."
                    ),
                    "ctaText": "Start Hiring Today",
                    "ctaColor": "brand-500",
                },
            ),
            VariantDefinition(
                id="variant_b",
                name="Variant B - Cost Focus",
                weight=0.0,
                config={
                    "headline": "Save 40% on India Expansion with EOR Services",
                    "subheadline": (
                        "Hire top Indian talent without the complexity. 48-hour setup, "
                        "100% compliance, India-first expertise."
                    ),
                    "ctaText": "Save Money Now",
                    "ctaColor": "cta-500",
                },
            ),
        ],
    ),
    ExperimentDefinition(
        id="cta_button_v1",
        name="CTA Button Test",
        description="Testing different CTA button text and colors",
        traffic_allocation=1.0,
        target_metric="click_through",
        variants=[
            VariantDefinition(
                id="control",
                name="Control - Get Started",
                weight=0.5,
                config={"text": "Get Started", "color": "cta-500", "size": "lg"},
            ),
            VariantDefinition(
                id="variant_a",
                name="Variant A - Urgency",
                weight=0.25,
                config={"text": "Start Now - Free Setup", "color": "brand-500", "size": "lg"},
            ),
            VariantDefinition(
                id="variant_b",
                name="Variant B - Benefit",
                weight=0.25,
                config={"text": "Save 40% Today", "color": "cta-500", "size": "lg"},
            ),
        ],
    ),
]

DEFAULT_REGISTRY = ExperimentRegistry(DEFAULT_EXPERIMENTS)
