"""Composable filter and ranking pipeline over enriched directory records."""

from __future__ import annotations

from typing import Callable, Iterable, List, Sequence, Tuple

from nomadnow.domain.directory.models import FilterState, NomadRecord

Predicate = Callable[[NomadRecord], bool]


def _matches_text(query: str) -> Predicate:
	needle = query.lower()

	def predicate(record: NomadRecord) -> bool:
		if needle in record.name.lower():
			return True
		if needle in record.profession.lower():
			return True
		if needle in record.location.lower():
			return True
		return any(needle in tag.lower() for tag in record.interests)

	return predicate


def _within_distance(max_km: float) -> Predicate:
	return lambda record: record.distance <= max_km


def _shares_interest(interests: Iterable[str]) -> Predicate:
	wanted = {tag.lower() for tag in interests}
	return lambda record: any(tag.lower() in wanted for tag in record.interests)


def build_predicates(filters: FilterState) -> List[Tuple[str, Predicate]]:
	"""Return the active predicates, cheapest first.

	Inactive filters contribute nothing, so an empty result means every record
	passes.
	"""
	predicates: List[Tuple[str, Predicate]] = []
	query = filters.search_query.strip()
	if query:
		predicates.append(("search", _matches_text(query)))
	if filters.max_distance is not None:
		predicates.append(("distance", _within_distance(filters.max_distance)))
	if filters.interests:
		predicates.append(("interests", _shares_interest(filters.interests)))
	if filters.online_only:
		predicates.append(("online", lambda record: record.is_online))
	if filters.available_only:
		predicates.append(("available", lambda record: record.is_available))
	return predicates


def apply(records: Sequence[NomadRecord], filters: FilterState) -> List[NomadRecord]:
	"""Filter ``records`` and rank by distance; the input is never mutated."""
	predicates = [predicate for _, predicate in build_predicates(filters)]
	kept = [record for record in records if all(predicate(record) for predicate in predicates)]
	# sorted() is stable, so equal distances keep aggregation order
	return sorted(kept, key=lambda record: record.distance)


__all__ = ["Predicate", "apply", "build_predicates"]
