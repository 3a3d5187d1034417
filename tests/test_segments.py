"""Tests for bounded-concurrency segment downloads."""
import asyncio

import pytest

from models.manifest import Segment
from stream_app.clients.segments import RetryPolicy, SegmentFetcher
from utils.cancellation import CancellationToken
from utils.exceptions import FetchError, JobCancelledError


def make_segments(cdn, count, delays=None):
    segments = []
    for index in range(count):
        path = f"/rec/seg{index}.ts"
        delay = delays[index] if delays else 0.0
        url = cdn.add(path, f"<seg{index}>", delay=delay)
        segments.append(Segment(manifest_index=0, index=index, uri=f"seg{index}.ts", resolved_uri=url))
    return segments


def fetch(cdn, segments, directory, max_concurrent=5, retry=None, cancel_token=None):
    async def run():
        async with cdn.client_factory()() as client:
            fetcher = SegmentFetcher(client, max_concurrent=max_concurrent, retry=retry)
            return await fetcher.fetch_all(segments, directory, cancel_token)
    return asyncio.run(run())


def test_results_ordered_by_index_whatever_completion_order(cdn, tmp_path):
    # later segments finish first
    delays = [0.05, 0.04, 0.0, 0.03, 0.01, 0.02]
    segments = make_segments(cdn, len(delays), delays)

    downloaded = fetch(cdn, segments, tmp_path, max_concurrent=6)

    assert [segment.index for segment in downloaded] == list(range(6))
    assert [segment.path.read_bytes() for segment in downloaded] == [
        f"<seg{i}>".encode() for i in range(6)
    ]
    assert all(segment.size == len(f"<seg{segment.index}>") for segment in downloaded)


def test_in_flight_never_exceeds_limit(cdn, tmp_path):
    segments = make_segments(cdn, 12, [0.01] * 12)

    fetch(cdn, segments, tmp_path, max_concurrent=3)

    assert cdn.max_in_flight <= 3
    assert len(cdn.requests) == 12


def test_single_failure_fails_the_batch(cdn, tmp_path):
    segments = make_segments(cdn, 4)
    cdn.add("/rec/seg2.ts", "", status=500)

    with pytest.raises(FetchError, match="Segment 2 of manifest 0 failed with HTTP 500"):
        fetch(cdn, segments, tmp_path)


def test_retry_recovers_transient_failure(cdn, tmp_path):
    segments = make_segments(cdn, 2)
    cdn.fail_times("/rec/seg1.ts", 2)

    downloaded = fetch(cdn, segments, tmp_path, retry=RetryPolicy(attempts=3, backoff_seconds=0))

    assert [segment.index for segment in downloaded] == [0, 1]
    assert cdn.requests.count("/rec/seg1.ts") == 3


def test_no_retry_by_default(cdn, tmp_path):
    segments = make_segments(cdn, 1)
    cdn.fail_times("/rec/seg0.ts", 1)

    with pytest.raises(FetchError):
        fetch(cdn, segments, tmp_path)
    assert cdn.requests.count("/rec/seg0.ts") == 1


def test_cancelled_token_stops_downloads(cdn, tmp_path):
    segments = make_segments(cdn, 3)
    token = CancellationToken()
    token.cancel("cancelled by test")

    with pytest.raises(JobCancelledError, match="cancelled by test"):
        fetch(cdn, segments, tmp_path, cancel_token=token)
    assert cdn.requests == []


def test_empty_segment_list(cdn, tmp_path):
    assert fetch(cdn, [], tmp_path) == []


def test_invalid_limit():
    with pytest.raises(ValueError):
        SegmentFetcher(client=None, max_concurrent=0)


def test_retry_backoff_doubles():
    policy = RetryPolicy(attempts=3, backoff_seconds=0.5)
    assert [policy.delay(attempt) for attempt in (1, 2, 3)] == [0.5, 1.0, 2.0]


def test_unrequestable_url_is_fetch_error(cdn, tmp_path):
    segment = Segment(manifest_index=0, index=0, uri="a.ts",
                      resolved_uri="https://cdn.example.com:notaport/a.ts")

    with pytest.raises(FetchError, match="Error downloading segment 0 of manifest 0"):
        fetch(cdn, [segment], tmp_path)
