"""Network Analysis agent: simulated capacity reallocation finder."""

from typing import List, Optional

from alert_intelligence.agents.scenarios import NETWORK_ROUTES, ScenarioCatalogue
from alert_intelligence.core.agent import DetectionContext
from alert_intelligence.core.enums import AlertCategory, AlertPriority, ScenarioType
from alert_intelligence.core.models import CandidateAlert


class NetworkAgent:
    agent_id = "network"
    name = "Network Analysis"

    SCENARIO_SHARE = 0.4
    DETECTION_CHANCE = 0.2

    def __init__(self, catalogue: Optional[ScenarioCatalogue] = None):
        self.catalogue = catalogue or ScenarioCatalogue()

    async def detect(self, context: DetectionContext) -> List[CandidateAlert]:
        rng = context.rng
        if rng.random() < self.SCENARIO_SHARE:
            scenario_type = ScenarioType.OPERATIONAL if rng.random() < 0.5 else ScenarioType.ECONOMIC
            return [s.to_candidate() for s in self.catalogue.sample(rng, 1, scenario_type)]
        if rng.random() >= self.DETECTION_CHANCE:
            return []

        config = context.configuration
        capacity_threshold = min(max(int(config.get("capacityThreshold", 80)), 51), 98)

        from_route, to_route = rng.sample(NETWORK_ROUTES, 2)
        from_load = rng.randint(50, capacity_threshold - 1)
        to_load = rng.randint(capacity_threshold, 98)
        capacity_change = rng.randint(1, 3)

        return [CandidateAlert(
            category=AlertCategory.NETWORK,
            priority=AlertPriority.MEDIUM,
            title=f"Capacity Reallocation Opportunity - {from_route} to {to_route}",
            description=(
                f"Network analysis suggests reallocating capacity from underperforming {from_route} "
                f"({from_load}% load factor) to high-demand {to_route} ({to_load}%)."
            ),
            confidence=round(rng.uniform(0.7, 0.88), 4),
            route=None,
            alert_type="network",
            impact_score=float(capacity_change * rng.randint(40000, 65000)),
            metadata={
                "fromRoute": from_route,
                "toRoute": to_route,
                "fromLoadFactor": from_load,
                "toLoadFactor": to_load,
                "capacityChange": capacity_change,
            },
        )]
