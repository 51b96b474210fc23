import pytest

from relay_review.schemas.event import KIND_LABEL, KIND_METADATA, KIND_REPORT
from relay_review.services.cancellation import OperationTimedOut
from relay_review.services.event_store import InMemoryEventStore
from relay_review.services.reputation import ReputationAggregator, UserStats, fetch_profile
from tests.conftest import make_event, pubkey


@pytest.fixture
def store():
    subject = pubkey("subject")
    events = [
        make_event("p1", author="subject", created_at=10),
        make_event("p3", author="subject", created_at=30),
        make_event("p2", author="subject", created_at=20),
        make_event("other", author="someone-else", created_at=40),
        make_event("l1", author="labeler", kind=KIND_LABEL, tags=[["p", subject], ["l", "spam"]]),
        make_event("r1", author="reporter", kind=KIND_REPORT, tags=[["p", subject, "spam"]]),
        make_event("r2", author="reporter", kind=KIND_REPORT, tags=[["p", subject, "nudity"]]),
        make_event("r3", author="reporter", kind=KIND_REPORT, tags=[["p", pubkey("else"), "spam"]]),
    ]
    return InMemoryEventStore(events)


@pytest.mark.asyncio
async def test_missing_identity_returns_zero_stats_without_querying(mocker):
    store = InMemoryEventStore()
    query = mocker.spy(store, "query")

    stats = await ReputationAggregator(store).get_user_stats(None)

    assert stats == UserStats.empty()
    assert stats.post_count == stats.report_count == stats.label_count == 0
    query.assert_not_called()
    assert store.queries == []


@pytest.mark.asyncio
async def test_stats_count_posts_labels_and_reports(store):
    stats = await ReputationAggregator(store).get_user_stats(pubkey("subject"))

    assert stats.post_count == 3
    assert stats.label_count == 1
    assert stats.report_count == 2
    assert {event.id for event in stats.previous_reports} == {"r1", "r2"}


@pytest.mark.asyncio
async def test_recent_posts_sorted_newest_first_regardless_of_store_order(store, mocker):
    original_query = store.query

    async def reversed_query(filters, signal=None):
        return list(reversed(await original_query(filters, signal)))

    mocker.patch.object(store, "query", side_effect=reversed_query)

    stats = await ReputationAggregator(store).get_user_stats(pubkey("subject"))

    assert [event.id for event in stats.recent_posts] == ["p3", "p2", "p1"]


@pytest.mark.asyncio
async def test_posts_limited_to_recent_window(store):
    stats = await ReputationAggregator(store, posts_limit=2).get_user_stats(pubkey("subject"))

    assert [event.id for event in stats.recent_posts] == ["p3", "p2"]
    assert stats.post_count == 2


@pytest.mark.asyncio
async def test_three_queries_issued_together(store):
    await ReputationAggregator(store).get_user_stats(pubkey("subject"))

    assert len(store.queries) == 3


@pytest.mark.asyncio
async def test_shared_timeout_rejects_stats():
    slow = InMemoryEventStore([make_event("p", author="subject")], latency=0.5)

    with pytest.raises(OperationTimedOut):
        await ReputationAggregator(slow, timeout_seconds=0.01).get_user_stats(pubkey("subject"))


@pytest.mark.asyncio
async def test_count_reports_by_reporter(store):
    count = await ReputationAggregator(store).count_reports_by(pubkey("reporter"))

    assert count == 3


@pytest.mark.asyncio
async def test_fetch_profile_uses_newest_metadata():
    store = InMemoryEventStore(
        [
            make_event("m1", author="alice", kind=KIND_METADATA, created_at=1, content='{"name": "old"}'),
            make_event("m2", author="alice", kind=KIND_METADATA, created_at=2, content='{"name": "alice"}'),
        ]
    )

    assert await fetch_profile(store, pubkey("alice")) == {"name": "alice"}


@pytest.mark.asyncio
async def test_fetch_profile_ignores_malformed_content():
    store = InMemoryEventStore([make_event("m", author="bob", kind=KIND_METADATA, content="not json")])

    assert await fetch_profile(store, pubkey("bob")) is None
    assert await fetch_profile(store, None) is None
