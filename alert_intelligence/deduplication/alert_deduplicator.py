"""
Alert Deduplicator - near-duplicate suppression for candidate alerts.

A candidate is a duplicate when an ACTIVE alert from the same agent, with
the same category and route, was created inside the lookback window and
either shares the candidate's normalized title or its keyword overlap
(Jaccard) exceeds the similarity threshold.

Rejected candidates are logged and dropped; nothing is persisted for them.
"""

import asyncio
import hashlib
import logging
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

from alert_intelligence.core.enums import AlertStatus
from alert_intelligence.core.models import Alert, AlertFilter, CandidateAlert, utcnow

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^a-z0-9]+")

MAX_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 4


class DeduplicationAction(str, Enum):
    NEW = "new"
    SKIP_DUPLICATE = "skip_duplicate"


@dataclass(frozen=True)
class DeduplicationDecision:
    action: DeduplicationAction
    deduplication_key: str
    matched_alert_id: Optional[str] = None
    similarity: float = 0.0
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.action == DeduplicationAction.NEW


def normalize_title(title: str) -> str:
    """Lowercase, collapse punctuation and whitespace."""
    return _NON_WORD.sub(" ", title.lower()).strip()


def extract_keywords(text: str) -> Set[str]:
    """First MAX_KEYWORDS words of at least MIN_KEYWORD_LENGTH characters."""
    words = [w for w in normalize_title(text).split() if len(w) >= MIN_KEYWORD_LENGTH]
    return set(words[:MAX_KEYWORDS])


def jaccard_similarity(left: Set[str], right: Set[str]) -> float:
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


class AlertDeduplicator:
    """Decides whether a candidate alert should be persisted.

    Args:
        store: AlertStore used to read the recent-alert window
        lookback_hours: age limit of alerts compared against
        max_records: maximum number of recent alerts compared against
        similarity_threshold: keyword Jaccard above which texts match
        enabled: when False every candidate is accepted
        metrics: optional MetricsService
    """

    def __init__(
        self,
        store,
        lookback_hours: float = 24,
        max_records: int = 50,
        similarity_threshold: float = 0.7,
        enabled: bool = True,
        metrics=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not 0.0 <= similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be within [0, 1]")
        self.store = store
        self.lookback_hours = lookback_hours
        self.max_records = max_records
        self.similarity_threshold = similarity_threshold
        self.enabled = enabled
        self.metrics = metrics
        self.clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self.stats = {"checked": 0, "accepted": 0, "suppressed": 0}

    def generate_deduplication_key(self, agent_id: str, candidate: CandidateAlert) -> str:
        """Stable key over (agent, category, route, normalized title).

        Example:
            agent_id = "competitive", title = "Ryanair price drop on LGW-BCN"
            -> "dedup_3f1c9a0b7d2e4f65"
        """
        key_parts = [
            candidate.agent_id or agent_id,
            candidate.category.value,
            candidate.route or "",
            normalize_title(candidate.title),
        ]
        hash_hex = hashlib.sha256("|".join(key_parts).encode()).hexdigest()[:16]
        return f"dedup_{hash_hex}"

    @asynccontextmanager
    async def guard(self, deduplication_key: str) -> AsyncIterator[None]:
        """Serialize check-then-persist for candidates sharing a key."""
        lock = self._locks.setdefault(deduplication_key, asyncio.Lock())
        self._lock_users[deduplication_key] = self._lock_users.get(deduplication_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[deduplication_key] -= 1
            if self._lock_users[deduplication_key] == 0:
                del self._lock_users[deduplication_key]
                del self._locks[deduplication_key]

    async def _recent_window(self, agent_id: str, candidate: CandidateAlert) -> List[Alert]:
        alert_filter = AlertFilter(
            agent_id=agent_id,
            category=candidate.category,
            route=candidate.route,
            match_route=True,
            statuses={AlertStatus.ACTIVE},
            since=self.clock() - timedelta(hours=self.lookback_hours),
        )
        return await self.store.list_recent(alert_filter, limit=self.max_records)

    async def check(self, agent_id: str, candidate: CandidateAlert) -> DeduplicationDecision:
        """Compare `candidate` against the recent-alert window.

        Store failures propagate; the caller treats them as persistence
        failures rather than as an empty window.
        """
        effective_agent = candidate.agent_id or agent_id
        key = self.generate_deduplication_key(effective_agent, candidate)
        self.stats["checked"] += 1

        if not self.enabled:
            return self._accept(key)

        window = await self._recent_window(effective_agent, candidate)
        if not window:
            return self._accept(key)

        normalized = normalize_title(candidate.title)
        keywords = extract_keywords(f"{candidate.title} {candidate.description}")
        for alert in window:
            if normalize_title(alert.title) == normalized:
                return self._suppress(key, alert, 1.0, "title match")
            similarity = jaccard_similarity(
                keywords, extract_keywords(f"{alert.title} {alert.description}")
            )
            if similarity > self.similarity_threshold:
                return self._suppress(key, alert, similarity, "similar content")

        return self._accept(key)

    def _accept(self, key: str) -> DeduplicationDecision:
        self.stats["accepted"] += 1
        if self.metrics:
            self.metrics.record_dedup(DeduplicationAction.NEW.value)
        return DeduplicationDecision(action=DeduplicationAction.NEW, deduplication_key=key)

    def _suppress(self, key: str, alert: Alert, similarity: float, reason: str) -> DeduplicationDecision:
        self.stats["suppressed"] += 1
        if self.metrics:
            self.metrics.record_dedup(DeduplicationAction.SKIP_DUPLICATE.value)
        logger.info(
            f"Duplicate alert suppressed: {key} | reason={reason} | "
            f"similarity={similarity:.2f} | matched={alert.id}"
        )
        return DeduplicationDecision(
            action=DeduplicationAction.SKIP_DUPLICATE,
            deduplication_key=key,
            matched_alert_id=alert.id,
            similarity=similarity,
            reason=reason,
        )

    def get_stats(self) -> Dict:
        checked = self.stats["checked"]
        return {
            **self.stats,
            "suppression_rate": self.stats["suppressed"] / checked if checked else 0.0,
            "enabled": self.enabled,
            "lookback_hours": self.lookback_hours,
            "similarity_threshold": self.similarity_threshold,
        }
