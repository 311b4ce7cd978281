"""
Competitive Intelligence agent.

Simulated fare monitoring: on each run the agent either replays a
competitive scenario or draws a competitor price move on a random route
and reports it when it clears the configured thresholds.
"""

import logging
from typing import List, Optional

from alert_intelligence.agents.scenarios import NETWORK_ROUTES, ScenarioCatalogue
from alert_intelligence.core.agent import DetectionContext
from alert_intelligence.core.enums import AlertCategory, AlertPriority, ScenarioType
from alert_intelligence.core.models import CandidateAlert

logger = logging.getLogger(__name__)

DEFAULT_COMPETITORS = ["Ryanair", "Wizz Air", "Vueling"]


class CompetitiveAgent:
    agent_id = "competitive"
    name = "Competitive Intelligence"

    SCENARIO_SHARE = 0.6
    DETECTION_CHANCE = 0.3
    WEEKLY_PASSENGERS = 3500

    def __init__(self, catalogue: Optional[ScenarioCatalogue] = None):
        self.catalogue = catalogue or ScenarioCatalogue()

    async def detect(self, context: DetectionContext) -> List[CandidateAlert]:
        rng = context.rng
        if rng.random() < self.SCENARIO_SHARE:
            return [s.to_candidate() for s in self.catalogue.sample(rng, 1, ScenarioType.COMPETITIVE)]
        if rng.random() >= self.DETECTION_CHANCE:
            return []

        config = context.configuration
        competitors = config.get("competitors") or DEFAULT_COMPETITORS
        # bounded so a misconfigured threshold cannot empty the draw range
        threshold = min(max(int(config.get("priceChangeThreshold", 10)), 1), 35)
        impact_threshold = config.get("impactThreshold", 5000)

        competitor = rng.choice(competitors)
        route = rng.choice(NETWORK_ROUTES)
        previous_price = rng.randint(80, 180)
        drop = rng.randint(threshold, 35)
        new_price = round(previous_price * (1 - drop / 100))
        impact = (previous_price - new_price) * self.WEEKLY_PASSENGERS * 0.25
        if impact < impact_threshold:
            logger.debug(f"{competitor} move on {route} below impact threshold ({impact:.0f})")
            return []

        priority = AlertPriority.CRITICAL if drop >= 20 else AlertPriority.HIGH
        return [CandidateAlert(
            category=AlertCategory.COMPETITIVE,
            priority=priority,
            title=f"{competitor} {drop}% Price Drop - {route}",
            description=(
                f"Competitor reduced prices by {drop}% on {route}. "
                f"Estimated revenue impact: £{impact:,.0f} weekly."
            ),
            confidence=round(rng.uniform(0.85, 0.97), 4),
            route=route,
            alert_type="competitive",
            impact_score=round(impact, 2),
            metadata={
                "competitor": competitor,
                "priceChange": -drop,
                "previousPrice": previous_price,
                "newPrice": new_price,
            },
        )]
