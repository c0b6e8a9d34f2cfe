"""
Query statistics and N+1 detection for lazy association loading.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Sequence

SLOW_QUERY_ENV = "EMBERORM_SLOW_QUERY_MS"


def resolve_slow_query_ms(*, default: int = 200, override: int | None = None) -> int:
    """
    Pick the slow-query threshold: explicit override, then environment, then default.
    """
    if override is not None:
        return override
    raw = os.getenv(SLOW_QUERY_ENV)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


@dataclass
class QueryStat:
    sql: str
    count: int = 0
    lazy_count: int = 0
    total_ms: float = 0.0
    fingerprints: set[str] = field(default_factory=set)
    samples: List[str] = field(default_factory=list)

    def record(
        self,
        fingerprint: str,
        elapsed_ms: float,
        *,
        lazy: bool,
        sample_limit: int,
        fingerprint_limit: int,
    ) -> None:
        self.count += 1
        if lazy:
            self.lazy_count += 1
        self.total_ms += elapsed_ms
        if len(self.fingerprints) >= fingerprint_limit:
            return
        if fingerprint and fingerprint not in self.fingerprints:
            self.fingerprints.add(fingerprint)
            if len(self.samples) < sample_limit:
                self.samples.append(fingerprint)

    @property
    def average_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_ms / self.count


class PerformanceTracker:
    """
    Tracks executed statements per session and warns when the same statement
    runs repeatedly with different parameters, which is what iterating over
    entities and touching a lazy association of each one looks like.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        n_plus_one_threshold: int = 10,
        sample_size: int = 5,
    ) -> None:
        self.logger = logger
        self.n_plus_one_threshold = n_plus_one_threshold
        self.sample_size = sample_size
        self.stats: dict[str, QueryStat] = {}
        self._reported: set[str] = set()

    def record(
        self, sql: str, params: Sequence[object], elapsed_ms: float, *, lazy: bool = False
    ) -> None:
        normalized_sql = self._normalize_sql(sql)
        # writes are never fingerprinted
        fingerprint = self._fingerprint(params) if self._is_read(normalized_sql) else ""
        stat = self.stats.setdefault(normalized_sql, QueryStat(sql=normalized_sql))
        stat.record(
            fingerprint,
            elapsed_ms,
            lazy=lazy,
            sample_limit=self.sample_size,
            fingerprint_limit=max(self.n_plus_one_threshold, 2),
        )
        if self._should_report(stat):
            self._report(stat)

    def summary(self) -> List[dict[str, object]]:
        return [
            {
                "sql": stat.sql,
                "count": stat.count,
                "lazy_loads": stat.lazy_count,
                "total_ms": stat.total_ms,
                "average_ms": stat.average_ms,
                "distinct_params": len(stat.fingerprints),
            }
            for stat in self.stats.values()
        ]

    def reset(self) -> None:
        self.stats.clear()
        self._reported.clear()

    def _should_report(self, stat: QueryStat) -> bool:
        if stat.count < self.n_plus_one_threshold:
            return False
        # repeated writes are batches, not N+1 reads
        if not self._is_read(stat.sql):
            return False
        if len(stat.fingerprints) < 2:
            return False
        return stat.sql not in self._reported

    def _report(self, stat: QueryStat) -> None:
        self._reported.add(stat.sql)
        hint = " (lazy association loads)" if stat.lazy_count else ""
        self.logger.warning(
            "Potential N+1 detected for SQL '%s' (%s executions, %s distinct params)%s",
            self._abbreviate(stat.sql),
            stat.count,
            len(stat.fingerprints),
            hint,
            extra={"sql": stat.sql, "count": stat.count, "distinct_params": len(stat.fingerprints)},
        )

    @staticmethod
    def _is_read(sql: str) -> bool:
        return sql.upper().startswith("SELECT")

    @staticmethod
    def _normalize_sql(sql: str) -> str:
        return " ".join(sql.strip().split())

    @staticmethod
    def _fingerprint(params: Sequence[object]) -> str:
        if not params:
            return ""
        return repr(tuple(params))

    @staticmethod
    def _abbreviate(sql: str, max_length: int = 80) -> str:
        if len(sql) <= max_length:
            return sql
        return sql[: max_length - 3] + "..."
