"""Built-in detectors and the scenario catalogue."""

from alert_intelligence.agents.competitive import CompetitiveAgent
from alert_intelligence.agents.network import NetworkAgent
from alert_intelligence.agents.performance import PerformanceAgent
from alert_intelligence.agents.scenarios import (
    AlertScenario,
    ScenarioCatalogue,
    ScenarioGenerator,
)

__all__ = [
    "AlertScenario",
    "CompetitiveAgent",
    "NetworkAgent",
    "PerformanceAgent",
    "ScenarioCatalogue",
    "ScenarioGenerator",
]
