"""
Agent Registry and Factory

Provides a centralized registry for discovering and instantiating detectors,
and the default agent records seeded into the store at start-up.
"""

from typing import Dict, List, Optional, Type
import importlib
import logging

from alert_intelligence.core.agent import Agent
from alert_intelligence.core.enums import AgentStatus
from alert_intelligence.core.models import AgentRecord

logger = logging.getLogger(__name__)


DEFAULT_AGENT_RECORDS: List[AgentRecord] = [
    AgentRecord(
        id="competitive",
        name="Competitive Intelligence",
        status=AgentStatus.ACTIVE,
        accuracy=94.7,
        configuration={
            "competitors": ["Ryanair", "Wizz Air", "Vueling"],
            "priceChangeThreshold": 10,
            "impactThreshold": 5000,
        },
    ),
    AgentRecord(
        id="performance",
        name="Performance Attribution",
        status=AgentStatus.ACTIVE,
        accuracy=92.3,
        configuration={
            "varianceThreshold": 5,
            "forecastAccuracy": 85,
            "alertThreshold": 20000,
        },
    ),
    AgentRecord(
        id="network",
        name="Network Analysis",
        status=AgentStatus.LEARNING,
        accuracy=89.1,
        configuration={
            "optimizationPeriod": 30,
            "capacityThreshold": 80,
            "yieldThreshold": 15,
        },
    ),
]


class AgentRegistry:
    """
    Registry for agent classes.

    Allows registration of agent classes by ID and provides factory methods
    for creating agent instances.
    """

    def __init__(self):
        self._agents: Dict[str, Type[Agent]] = {}

    def register(self, agent_id: str, agent_class: Type[Agent]) -> None:
        """Register an agent class with the given ID."""
        if agent_id in self._agents:
            logger.warning(f"Overwriting existing agent registration: {agent_id}")
        self._agents[agent_id] = agent_class
        logger.info(f"Registered agent: {agent_id} -> {agent_class.__name__}")

    def unregister(self, agent_id: str) -> None:
        """Unregister an agent by ID."""
        if agent_id in self._agents:
            del self._agents[agent_id]
            logger.info(f"Unregistered agent: {agent_id}")

    def get(self, agent_id: str) -> Optional[Type[Agent]]:
        """Get an agent class by ID."""
        return self._agents.get(agent_id)

    def create(self, agent_id: str, **kwargs) -> Agent:
        """
        Create an agent instance by ID.

        Args:
            agent_id: The agent identifier
            **kwargs: Additional arguments to pass to the agent constructor

        Returns:
            An instantiated agent

        Raises:
            ValueError: If agent_id is not registered
        """
        agent_class = self.get(agent_id)
        if agent_class is None:
            raise ValueError(f"Agent not registered: {agent_id}")
        return agent_class(**kwargs)

    def create_all(self, **kwargs) -> List[Agent]:
        """Instantiate every registered agent with the same constructor arguments."""
        return [self.create(agent_id, **kwargs) for agent_id in self._agents]

    def list_agents(self) -> List[str]:
        """List all registered agent IDs."""
        return list(self._agents.keys())

    def load_from_module(self, module_path: str, agent_classes: List[str]) -> None:
        """
        Dynamically load agent classes from a module.

        Each class is registered under its `agent_id` attribute.

        Args:
            module_path: Python module path (e.g., 'alert_intelligence.agents')
            agent_classes: List of class names to load
        """
        try:
            module = importlib.import_module(module_path)
        except ImportError as e:
            logger.error(f"Failed to load module {module_path}: {e}")
            raise

        for class_name in agent_classes:
            agent_class = getattr(module, class_name, None)
            if agent_class is None:
                logger.warning(f"Class not found in {module_path}: {class_name}")
                continue
            agent_id = getattr(agent_class, "agent_id", None) or class_name.lower().replace("agent", "")
            self.register(agent_id, agent_class)


def load_builtin_agents(registry: Optional[AgentRegistry] = None) -> AgentRegistry:
    """Register the competitive, performance and network detectors."""
    registry = registry or AgentRegistry()
    registry.load_from_module(
        "alert_intelligence.agents",
        ["CompetitiveAgent", "PerformanceAgent", "NetworkAgent"],
    )
    return registry


async def initialize_agents(store, records: Optional[List[AgentRecord]] = None) -> List[AgentRecord]:
    """Insert the default agent records that are not in the store yet."""
    seeded = []
    for record in records if records is not None else DEFAULT_AGENT_RECORDS:
        seeded.append(await store.ensure_agent(record))
    logger.info(f"Agent records ready: {[r.id for r in seeded]}")
    return seeded
