"""
Performance Attribution agent.

Simulated route performance review: replays demand or system scenarios
half of the time, otherwise looks for a booking surge that beats the
configured variance threshold.
"""

from typing import List, Optional

from alert_intelligence.agents.scenarios import NETWORK_ROUTES, ScenarioCatalogue
from alert_intelligence.core.agent import DetectionContext
from alert_intelligence.core.enums import AlertCategory, AlertPriority, ScenarioType
from alert_intelligence.core.models import CandidateAlert


class PerformanceAgent:
    agent_id = "performance"
    name = "Performance Attribution"

    SCENARIO_SHARE = 0.5
    DETECTION_CHANCE = 0.4

    def __init__(self, catalogue: Optional[ScenarioCatalogue] = None):
        self.catalogue = catalogue or ScenarioCatalogue()

    async def detect(self, context: DetectionContext) -> List[CandidateAlert]:
        rng = context.rng
        if rng.random() < self.SCENARIO_SHARE:
            scenario_type = ScenarioType.DEMAND if rng.random() < 0.5 else ScenarioType.SYSTEM
            return [s.to_candidate() for s in self.catalogue.sample(rng, 1, scenario_type)]
        if rng.random() >= self.DETECTION_CHANCE:
            return []

        config = context.configuration
        variance_threshold = min(max(int(config.get("varianceThreshold", 5)), 0), 40)
        alert_threshold = config.get("alertThreshold", 20000)

        route = rng.choice(NETWORK_ROUTES)
        demand_increase = rng.randint(variance_threshold, 40)
        load_factor = rng.randint(75, 97)
        impact = demand_increase * rng.randint(1500, 3000)
        priority = AlertPriority.HIGH if impact >= alert_threshold else AlertPriority.MEDIUM

        return [CandidateAlert(
            category=AlertCategory.PERFORMANCE,
            priority=priority,
            title=f"Demand Surge - {route}",
            description=(
                f"{demand_increase}% booking increase detected overnight on {route}. "
                f"Current load factor: {load_factor}%."
            ),
            confidence=round(rng.uniform(0.75, 0.92), 4),
            route=route,
            alert_type="performance",
            impact_score=float(impact),
            metadata={
                "demandIncrease": demand_increase,
                "loadFactor": load_factor,
                "opportunity": "pricing",
            },
        )]
