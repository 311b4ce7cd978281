"""
Scenario catalogue - pre-authored exemplar alerts.

Scenarios give a fresh deployment realistic alerts before any detector has
real data behind it. They reach the store through the same
runner -> deduplicator -> store path as detector output.
"""

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from alert_intelligence.core.agent import DetectionContext
from alert_intelligence.core.enums import AlertCategory, AlertPriority, ScenarioType
from alert_intelligence.core.models import CandidateAlert

logger = logging.getLogger(__name__)

# Routes the simulated detectors pick from.
NETWORK_ROUTES = (
    "LGW-BCN",
    "LGW-CDG",
    "LGW-AGP",
    "LGW-PMI",
    "LGW-AMS",
    "LGW-MAD",
    "STN-AMS",
    "STN-BCN",
)


@dataclass(frozen=True)
class AlertScenario:
    scenario_type: ScenarioType
    priority: AlertPriority
    category: AlertCategory
    title: str
    description: str
    recommendation: str
    confidence: float
    agent_source: str
    route: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_candidate(self) -> CandidateAlert:
        return CandidateAlert(
            category=self.category,
            priority=self.priority,
            title=self.title,
            description=self.description,
            confidence=self.confidence,
            route=self.route,
            alert_type=self.scenario_type.value,
            agent_id=self.agent_source,
            metadata={
                **self.metadata,
                "recommendation": self.recommendation,
                "scenario_generated": True,
                "scenario_type": self.scenario_type.value,
            },
        )


DEFAULT_SCENARIOS: List[AlertScenario] = [
    # Competitive intelligence
    AlertScenario(
        scenario_type=ScenarioType.COMPETITIVE,
        priority=AlertPriority.CRITICAL,
        category=AlertCategory.COMPETITIVE,
        title="Ryanair Flash Sale Attack on Core Route LGW-BCN",
        description=(
            "Ryanair has launched aggressive pricing 25% below normal levels on LGW-BCN for "
            "mid-haul flights (14-35 days out). This represents their most aggressive move on "
            "this route in 6 months. British Airways has responded by increasing premium "
            "positioning rather than matching."
        ),
        recommendation=(
            "IMMEDIATE ACTION: Consider selective price matching on Tuesday-Thursday flights "
            "where Ryanair pricing is most aggressive. Maintain weekend premium but monitor "
            "booking pace carefully. Set up hourly booking alerts for next 48 hours."
        ),
        route="LGW-BCN",
        confidence=0.94,
        agent_source="competitive",
        metadata={
            "competitor": "Ryanair",
            "price_drop_percentage": 25,
            "affected_days": "14-35",
            "competitor_response": "British Airways premium positioning",
        },
    ),
    AlertScenario(
        scenario_type=ScenarioType.COMPETITIVE,
        priority=AlertPriority.HIGH,
        category=AlertCategory.COMPETITIVE,
        title="BA Premium Push Counter-Attack on LGW-CDG",
        description=(
            "British Airways has increased prices 15% above normal on LGW-CDG business routes, "
            "focusing on premium travelers. This follows aggressive Wizz Air expansion on the "
            "route. BA is betting on service differentiation over price competition."
        ),
        recommendation=(
            "STRATEGIC RESPONSE: Position as premium alternative to Wizz Air but below BA "
            "pricing. Target 8-12% price increase with enhanced service messaging. Monitor BA "
            "load factors for validation."
        ),
        route="LGW-CDG",
        confidence=0.87,
        agent_source="competitive",
        metadata={
            "competitor": "British Airways",
            "price_increase_percentage": 15,
            "strategy": "premium_positioning",
            "threat": "Wizz Air expansion",
        },
    ),
    # Demand anomalies
    AlertScenario(
        scenario_type=ScenarioType.DEMAND,
        priority=AlertPriority.HIGH,
        category=AlertCategory.PERFORMANCE,
        title="Viral Demand Surge on LGW-Malaga Route",
        description=(
            "Search volume for LGW-AGP has increased 300% in 5 days, likely due to social media "
            "travel content. Conversion rates are 45% above normal, indicating high purchase "
            "intent. Current pricing may be leaving money on the table."
        ),
        recommendation=(
            "REVENUE OPPORTUNITY: Increase prices 12-15% for flights departing 14-28 days. "
            "Demand strength supports premium capture. Monitor competitor response and be ready "
            "to adjust if market pushes back."
        ),
        route="LGW-AGP",
        confidence=0.89,
        agent_source="performance",
        metadata={
            "search_increase_percentage": 300,
            "conversion_increase_percentage": 45,
            "trigger": "social_media_viral",
            "recommended_price_increase": "12-15%",
        },
    ),
    AlertScenario(
        scenario_type=ScenarioType.DEMAND,
        priority=AlertPriority.MEDIUM,
        category=AlertCategory.PERFORMANCE,
        title="Weekend Warrior Pattern Shift - PMI Route",
        description=(
            "Unusual mid-week booking surge detected on LGW-PMI. Tuesday-Thursday flights "
            "showing 87% load factors vs 72% for weekends. This breaks traditional leisure "
            "travel patterns for Palma."
        ),
        recommendation=(
            "TACTICAL ADJUSTMENT: Shift capacity from weekend to mid-week if possible. Increase "
            "Tuesday-Thursday pricing 8% to capitalize on unusual demand pattern. Investigate "
            "if this is temporary or structural shift."
        ),
        route="LGW-PMI",
        confidence=0.76,
        agent_source="performance",
        metadata={
            "midweek_load_factor": 87.5,
            "weekend_load_factor": 72.3,
            "pattern": "reverse_traditional",
            "capacity_recommendation": "shift_to_midweek",
        },
    ),
    AlertScenario(
        scenario_type=ScenarioType.DEMAND,
        priority=AlertPriority.HIGH,
        category=AlertCategory.PERFORMANCE,
        title="Last-Minute Booking Surge - Summer Routes",
        description=(
            "Mediterranean routes showing 40% increase in bookings within 7 days of departure. "
            "Average fare premium 35% above advance bookings. Trend accelerating vs historical "
            "patterns."
        ),
        recommendation=(
            "DYNAMIC PRICING: Implement aggressive last-minute pricing strategy. Increase "
            "inventory protection for close-in sales. Consider reducing advance purchase "
            "incentives temporarily to capture higher yields."
        ),
        confidence=0.83,
        agent_source="performance",
        metadata={
            "booking_surge": 40,
            "fare_premium": 35,
            "booking_window": "7 days",
            "affected_routes": "Mediterranean",
            "trend": "accelerating",
        },
    ),
    # Operational disruption
    AlertScenario(
        scenario_type=ScenarioType.OPERATIONAL,
        priority=AlertPriority.HIGH,
        category=AlertCategory.NETWORK,
        title="Strike Disruption Creates Demand Spillover",
        description=(
            "French ATC strike is disrupting Paris routes, creating 60% surge in demand for "
            "Amsterdam and Brussels alternatives. Current capacity may be insufficient to "
            "capture opportunity."
        ),
        recommendation=(
            "TACTICAL RESPONSE: Consider aircraft swap to larger gauge on LGW-AMS if available. "
            "Increase prices 8-10% to optimize revenue from constrained capacity. Extend "
            "promotion to Brussels route to capture additional spillover."
        ),
        route="LGW-AMS",
        confidence=0.91,
        agent_source="network",
        metadata={
            "disruption_type": "ATC_strike",
            "affected_routes": ["LGW-CDG", "LGW-ORY"],
            "spillover_demand": 60,
            "alternative_routes": ["LGW-AMS", "LGW-BRU"],
        },
    ),
    AlertScenario(
        scenario_type=ScenarioType.OPERATIONAL,
        priority=AlertPriority.HIGH,
        category=AlertCategory.NETWORK,
        title="Capacity Reallocation Opportunity - Eastern Europe",
        description=(
            "Load factors on Eastern European routes (WAW, BUD, PRG) averaging 91% vs 78% "
            "Western Europe average. Demand exceeding supply by estimated 15%. Opportunity for "
            "capacity reallocation."
        ),
        recommendation=(
            "CAPACITY STRATEGY: Evaluate aircraft reallocation from underperforming Western "
            "routes to Eastern Europe. Consider frequency increases on WAW-LGW and BUD-LGW. ROI "
            "analysis suggests 12% revenue uplift potential."
        ),
        confidence=0.85,
        agent_source="network",
        metadata={
            "eastern_europe_lf": 91,
            "western_europe_lf": 78,
            "demand_excess": 15,
            "recommended_routes": ["WAW-LGW", "BUD-LGW"],
            "roi_potential": "12%",
        },
    ),
    AlertScenario(
        scenario_type=ScenarioType.OPERATIONAL,
        priority=AlertPriority.CRITICAL,
        category=AlertCategory.NETWORK,
        title="Volcanic Ash Cloud Disruption Imminent",
        description=(
            "Meteorological models show 72% probability of volcanic ash cloud affecting "
            "Northern European airspace within 48 hours. Historical data suggests 3-5 day "
            "disruption period with 85% flight cancellations."
        ),
        recommendation=(
            "CRISIS PREPARATION: Activate contingency protocols immediately. Pre-position "
            "aircraft in Southern European bases. Prepare passenger re-accommodation "
            "procedures. Consider temporary route suspensions to preserve crew duty time."
        ),
        confidence=0.88,
        agent_source="network",
        metadata={
            "disruption_probability": 72,
            "estimated_duration": "3-5 days",
            "expected_cancellations": 85,
            "affected_region": "Northern Europe",
            "trigger": "volcanic ash",
        },
    ),
    # System conflict
    AlertScenario(
        scenario_type=ScenarioType.SYSTEM,
        priority=AlertPriority.MEDIUM,
        category=AlertCategory.PERFORMANCE,
        title="Revenue Management System Override Detected",
        description=(
            "Elysium recommended price increase on LGW-BCN flight EZY8842 (25 days out) but "
            "analyst manually overrode with price decrease. Distance from profile: -23%. This "
            "suggests either system calibration issue or analyst has market intelligence not "
            "captured in model."
        ),
        recommendation=(
            "REVIEW REQUIRED: Investigate analyst reasoning for override. If valid competitive "
            "threat detected, update system parameters. If analyst error, provide additional "
            "training on profile interpretation."
        ),
        route="LGW-BCN",
        confidence=0.82,
        agent_source="performance",
        metadata={
            "system_recommendation": "price_increase",
            "analyst_action": "price_decrease",
            "profile_distance": "-23%",
            "flight_code": "EZY8842",
            "days_out": 25,
        },
    ),
    # Economic signals
    AlertScenario(
        scenario_type=ScenarioType.ECONOMIC,
        priority=AlertPriority.MEDIUM,
        category=AlertCategory.NETWORK,
        title="GBP Strength May Impact European Leisure Demand",
        description=(
            "GBP has strengthened 5% vs EUR in 3 days, making UK holidays more expensive for "
            "European travelers. Historical correlation suggests 8-12% demand reduction for "
            "European leisure traffic within 14 days."
        ),
        recommendation=(
            "HEDGE STRATEGY: Consider promotional pricing for European point-of-sale markets. "
            "Monitor booking pace from EU origins closely. Potential opportunity to shift "
            "marketing spend to domestic UK leisure market."
        ),
        confidence=0.76,
        agent_source="network",
        metadata={
            "currency_change": "GBP_EUR_+5%",
            "historical_impact": "8-12% demand reduction",
            "affected_segment": "European leisure",
            "timeframe": "14 days",
        },
    ),
]


class ScenarioCatalogue:
    """Read-only collection of scenarios, queried by type."""

    def __init__(self, scenarios: Optional[Iterable[AlertScenario]] = None):
        self.scenarios: List[AlertScenario] = list(DEFAULT_SCENARIOS if scenarios is None else scenarios)

    def __len__(self) -> int:
        return len(self.scenarios)

    @property
    def types(self) -> List[ScenarioType]:
        """Scenario types present, in enumeration order."""
        present = {s.scenario_type for s in self.scenarios}
        return [t for t in ScenarioType if t in present]

    def by_type(self, scenario_type: ScenarioType) -> List[AlertScenario]:
        return [s for s in self.scenarios if s.scenario_type == ScenarioType(scenario_type)]

    def sample(
        self,
        rng: random.Random,
        count: int = 1,
        scenario_type: Optional[ScenarioType] = None,
    ) -> List[AlertScenario]:
        """Up to `count` distinct scenarios, optionally of one type."""
        pool = self.scenarios if scenario_type is None else self.by_type(scenario_type)
        return rng.sample(pool, min(count, len(pool)))

    def stats(self) -> Dict[str, Any]:
        return {
            "total": len(self.scenarios),
            "by_type": dict(Counter(s.scenario_type.value for s in self.scenarios)),
            "by_priority": dict(Counter(s.priority.value for s in self.scenarios)),
            "by_category": dict(Counter(s.category.value for s in self.scenarios)),
        }


class ScenarioGenerator:
    """
    Agent that replays catalogue scenarios of one type.

    Candidates are attributed to each scenario's source agent, so a
    scenario alert counts toward that agent's history and deduplication
    window.
    """

    def __init__(self, catalogue: ScenarioCatalogue, scenario_type: ScenarioType, count: int = 1):
        if count < 1:
            raise ValueError("count must be >= 1")
        self.catalogue = catalogue
        self.scenario_type = ScenarioType(scenario_type)
        self.count = count
        self.agent_id = f"scenario:{self.scenario_type.value}"
        self.name = f"{self.scenario_type.value.title()} Scenario Generator"

    async def detect(self, context: DetectionContext) -> List[CandidateAlert]:
        selected = self.catalogue.sample(context.rng, self.count, self.scenario_type)
        logger.debug(f"{self.agent_id} selected {[s.title for s in selected]}")
        return [s.to_candidate() for s in selected]
