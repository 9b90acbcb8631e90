import pytest

from nomadnow.domain.directory.aggregator import aggregate
from nomadnow.domain.directory.models import RatingSummary
from nomadnow.domain.directory.sources import SampleSource


class FakeRatings:
	def __init__(self, summaries=None, *, fail=False):
		self.summaries = summaries or {}
		self.fail = fail
		self.requested = None

	async def get_summaries(self, user_ids):
		self.requested = list(user_ids)
		if self.fail:
			raise RuntimeError("ratings down")
		return self.summaries


@pytest.mark.asyncio
async def test_duplicate_ids_keep_first_source(make_record, static_source_cls):
	remote = static_source_cls("remote", [make_record("U1", name="Remote U1"), make_record("U2")])
	local = static_source_cls("local", [make_record("U1", name="Local U1", source="local"), make_record("U3", source="local")])

	result = await aggregate([remote, local])

	assert [r.id for r in result.records] == ["U1", "U2", "U3"]
	assert result.records[0].name == "Remote U1"
	assert result.failures == []
	assert result.used_sample is False


@pytest.mark.asyncio
async def test_failing_source_is_recorded_and_others_used(make_record, static_source_cls, failing_source_cls):
	failing = failing_source_cls("remote")
	local = static_source_cls("local", [make_record("L1", source="local")])

	result = await aggregate([failing, local], sample=SampleSource())

	assert [r.id for r in result.records] == ["L1"]
	assert [f.source for f in result.failures] == ["remote"]
	assert result.used_sample is False


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_source_failure(static_source_cls, failing_source_cls):
	broken = failing_source_cls("local", RuntimeError("disk"))

	result = await aggregate([broken])

	assert result.records == []
	assert result.failures[0].source == "local"
	assert result.failures[0].reason == "RuntimeError"
	assert result.all_failed is True


@pytest.mark.asyncio
async def test_sample_used_only_when_every_source_failed(now, failing_source_cls):
	result = await aggregate(
		[failing_source_cls("remote"), failing_source_cls("local")],
		sample=SampleSource(clock=lambda: now),
	)

	assert result.used_sample is True
	assert result.records and all(r.is_sample for r in result.records)
	assert len(result.failures) == 2


@pytest.mark.asyncio
async def test_empty_real_source_does_not_trigger_sample(static_source_cls):
	result = await aggregate([static_source_cls("remote", [])], sample=SampleSource())
	assert result.records == []
	assert result.used_sample is False
	assert result.all_failed is False


@pytest.mark.asyncio
async def test_ratings_are_applied_in_one_batch(make_record, static_source_cls):
	ratings = FakeRatings({"U1": RatingSummary(average_rating=4.5, total_ratings=12)})
	source = static_source_cls("remote", [make_record("U1"), make_record("U2")])

	result = await aggregate([source], ratings=ratings)

	assert ratings.requested == ["U1", "U2"]
	by_id = {r.id: r for r in result.records}
	assert (by_id["U1"].rating, by_id["U1"].review_count) == (4.5, 12)
	assert (by_id["U2"].rating, by_id["U2"].review_count) == (0.0, 0)


@pytest.mark.asyncio
async def test_rating_failure_degrades_to_unrated(make_record, static_source_cls):
	source = static_source_cls("remote", [make_record("U1")])

	result = await aggregate([source], ratings=FakeRatings(fail=True))

	assert result.records[0].rating == 0
	assert result.records[0].review_count == 0
