"""Merge records from every configured source into one de-duplicated list."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence

from nomadnow.domain.directory.exceptions import SourceUnavailable
from nomadnow.domain.directory.models import NomadRecord, RatingSummary
from nomadnow.domain.directory.sources import RatingProvider, Source
from nomadnow.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AggregationResult:
	records: list[NomadRecord] = field(default_factory=list)
	failures: list[SourceUnavailable] = field(default_factory=list)
	used_sample: bool = False

	@property
	def all_failed(self) -> bool:
		return not self.records and bool(self.failures)


def _as_failure(source: Source, exc: BaseException) -> SourceUnavailable:
	if isinstance(exc, SourceUnavailable):
		return exc
	return SourceUnavailable(source.name, type(exc).__name__)


def _merge(batches: Sequence[Sequence[NomadRecord]]) -> list[NomadRecord]:
	seen: set[str] = set()
	merged: list[NomadRecord] = []
	for batch in batches:
		for record in batch:
			if record.id in seen:
				continue
			seen.add(record.id)
			merged.append(record)
	return merged


async def _apply_ratings(records: list[NomadRecord], ratings: Optional[RatingProvider]) -> list[NomadRecord]:
	if ratings is None or not records:
		return records
	try:
		summaries = await ratings.get_summaries([record.id for record in records])
	except Exception:
		logger.warning("rating lookup failed; defaulting to unrated", exc_info=True)
		return records
	empty = RatingSummary()
	rated: list[NomadRecord] = []
	for record in records:
		summary = summaries.get(record.id, empty)
		rated.append(
			replace(
				record,
				rating=float(summary.average_rating or 0.0),
				review_count=int(summary.total_ratings or 0),
			)
		)
	return rated


async def aggregate(
	sources: Sequence[Source],
	*,
	sample: Optional[Source] = None,
	ratings: Optional[RatingProvider] = None,
) -> AggregationResult:
	"""Fetch every source concurrently and merge in priority order.

	Sources earlier in ``sources`` win id collisions. The sample tier is consulted
	only when every real source failed, so sample rows never mix with real data.
	Source failures are recorded on the result; this coroutine does not raise for
	them.
	"""
	result = AggregationResult()
	outcomes = await asyncio.gather(*(source.fetch() for source in sources), return_exceptions=True)

	batches: list[Sequence[NomadRecord]] = []
	for source, outcome in zip(sources, outcomes):
		if isinstance(outcome, asyncio.CancelledError):
			raise outcome
		if isinstance(outcome, BaseException):
			failure = _as_failure(source, outcome)
			result.failures.append(failure)
			obs_metrics.inc_source_failure(source.name)
			logger.warning("directory source failed source=%s reason=%s", source.name, failure.reason)
			continue
		batches.append(outcome)

	if sources and len(result.failures) == len(sources) and sample is not None:
		try:
			batches = [await sample.fetch()]
			result.used_sample = True
			obs_metrics.inc_sample_fallback()
			logger.info("all directory sources failed; serving sample records")
		except Exception as exc:
			result.failures.append(_as_failure(sample, exc))
			logger.error("sample source failed", exc_info=True)

	merged = _merge(batches)
	result.records = await _apply_ratings(merged, ratings) if not result.used_sample else merged
	return result


__all__ = ["AggregationResult", "aggregate"]
