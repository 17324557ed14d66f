"""
Consolidated per-agent state.

Every component that keeps something per agent (store, rules, pattern
counts, complexity history, iteration counter, cycle lock, metrics) reads
and writes one ``AgentState`` record looked up through a shared
``AgentRegistry``.
"""

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from distillery.core.scoring import PatternFrequencyTable
from distillery.core.store import BoundedStore
from distillery.core.workflow import DistillationWorkflow
from distillery.models.experience import ExperienceItem
from distillery.models.rule import Rule

logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = 1


@dataclass
class AgentState:
    """Everything the pipeline keeps for one agent."""

    agent_id: str
    store: BoundedStore
    rules: List[Rule] = field(default_factory=list)
    pattern_table: PatternFrequencyTable = field(default_factory=PatternFrequencyTable)
    complexity_history: Deque[float] = field(default_factory=lambda: deque(maxlen=10))
    learning_iterations: int = 0
    completed_cycles: int = 0
    metrics: Deque[Dict[str, Any]] = field(default_factory=lambda: deque(maxlen=100))
    workflow: Optional[DistillationWorkflow] = None

    cycle_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    dirty: bool = False
    restored: bool = False
    degraded: bool = False
    # Saved checkpoint exists but could not be read; never overwritten
    checkpoint_unreadable: bool = False

    def __post_init__(self):
        if self.workflow is None:
            self.workflow = DistillationWorkflow(agent_id=self.agent_id)

    @property
    def rule_count(self) -> int:
        return len(self.rules)

    def to_checkpoint(self) -> Dict[str, Any]:
        """Serializable state: store contents, rules, counters and complexity history."""
        return {
            "version": CHECKPOINT_VERSION,
            "agent_id": self.agent_id,
            "items": [item.to_dict() for item in self.store.items()],
            "rules": [rule.to_dict() for rule in self.rules],
            "pattern_counts": self.pattern_table.to_list(),
            "complexity_history": list(self.complexity_history),
            "learning_iterations": self.learning_iterations,
            "completed_cycles": self.completed_cycles,
        }

    def load_checkpoint(self, data: Dict[str, Any]):
        """
        Restore state from ``to_checkpoint`` output.

        The whole checkpoint is parsed before anything is applied, so a
        malformed checkpoint leaves the state untouched.

        Raises:
            ValueError: If the checkpoint version is not supported
            InvalidItemError: If a stored item is malformed
            KeyError, TypeError: If the checkpoint structure is malformed
        """
        version = data.get("version", CHECKPOINT_VERSION)
        if version != CHECKPOINT_VERSION:
            raise ValueError(f"Unsupported checkpoint version: {version}")

        items = [ExperienceItem.from_dict(item) for item in data.get("items", [])]
        rules = [Rule.from_dict(rule) for rule in data.get("rules", [])]
        pattern_table = PatternFrequencyTable.from_list(data.get("pattern_counts", []))
        history = [float(v) for v in data.get("complexity_history", [])]
        learning_iterations = int(data.get("learning_iterations", 0))
        completed_cycles = int(data.get("completed_cycles", 0))

        self.store.restore(items)
        self.rules = rules
        self.pattern_table = pattern_table
        self.complexity_history.clear()
        self.complexity_history.extend(history)
        self.learning_iterations = learning_iterations
        self.completed_cycles = completed_cycles

        logger.info(
            f"Restored agent {self.agent_id}: {self.store.size()} items, "
            f"{len(self.rules)} rules, {self.completed_cycles} completed cycles"
        )


class AgentRegistry:
    """
    Thread-safe lookup of per-agent state, created on first access.

    Usage:
        registry = AgentRegistry(store_factory=lambda agent_id: BoundedStore(capacity=500))
        state = registry.get_or_create("agent-1")
    """

    def __init__(
        self,
        store_factory: Optional[Callable[[str], BoundedStore]] = None,
        history_size: int = 10,
        metrics_history: int = 100
    ):
        """
        Initialize the registry.

        Args:
            store_factory: Builds the store for a new agent (default: ``BoundedStore()``)
            history_size: Complexity samples retained per agent
            metrics_history: Cycle metrics retained per agent
        """
        self.store_factory = store_factory or (lambda agent_id: BoundedStore())
        self.history_size = history_size
        self.metrics_history = metrics_history
        self._agents: Dict[str, AgentState] = {}
        self._lock = threading.Lock()

    def get_or_create(self, agent_id: str) -> AgentState:
        with self._lock:
            state = self._agents.get(agent_id)
            if state is None:
                state = AgentState(
                    agent_id=agent_id,
                    store=self.store_factory(agent_id),
                    complexity_history=deque(maxlen=self.history_size),
                    metrics=deque(maxlen=self.metrics_history),
                )
                self._agents[agent_id] = state
                logger.debug(f"Registered agent {agent_id}")
            return state

    def get(self, agent_id: str) -> Optional[AgentState]:
        with self._lock:
            return self._agents.get(agent_id)

    def remove(self, agent_id: str) -> bool:
        with self._lock:
            return self._agents.pop(agent_id, None) is not None

    def agent_ids(self) -> List[str]:
        with self._lock:
            return list(self._agents)

    def states(self) -> List[AgentState]:
        with self._lock:
            return list(self._agents.values())

    def __contains__(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self._agents

    def __len__(self) -> int:
        with self._lock:
            return len(self._agents)
