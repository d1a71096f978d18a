import pytest

from doccrawl.queue import MAX_RETRIES, CrawlQueue


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.slept = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds


def _queue(rate=2.0):
    clock = FakeClock()
    return CrawlQueue(rate, clock=clock, sleep=clock.sleep), clock


def test_add_dedups_normalized_urls():
    q, _ = _queue()
    assert q.add("https://Docs.Example.com/a#intro") is True
    assert q.add("https://docs.example.com/a") is False
    assert q.size == 1
    assert q.get_queued() == ["https://docs.example.com/a"]


def test_add_all_counts_and_skips_excluded():
    q, _ = _queue()
    added = q.add_all(
        [
            "https://x.dev/llms.txt",
            "https://x.dev/a",
            "https://x.dev/a",
            "https://x.dev/b",
        ],
        exclude_url="https://x.dev/llms.txt",
    )
    assert added == 2
    assert q.get_queued() == ["https://x.dev/a", "https://x.dev/b"]


def test_next_is_fifo_and_none_when_empty():
    q, clock = _queue()
    assert q.next() is None
    q.add_all(["https://x.dev/1", "https://x.dev/2", "https://x.dev/3"])
    got = [q.next().url for _ in range(3)]
    assert got == ["https://x.dev/1", "https://x.dev/2", "https://x.dev/3"]
    assert q.next() is None
    assert q.is_empty


def test_next_paces_dequeues():
    q, clock = _queue(rate=2.0)
    q.add_all(["https://x.dev/1", "https://x.dev/2"])
    q.next()
    assert clock.slept == []
    clock.now += 0.2
    q.next()
    assert clock.slept == [pytest.approx(0.3)]


def test_empty_next_does_not_sleep():
    q, clock = _queue()
    q.add("https://x.dev/1")
    q.next()
    assert q.next() is None
    assert clock.slept == []


def test_set_rate_applies_to_following_dequeues():
    q, clock = _queue(rate=10.0)
    q.add_all(["https://x.dev/1", "https://x.dev/2"])
    q.next()
    q.set_rate(0.5)
    assert q.interval_s == 2.0
    q.next()
    assert clock.slept == [pytest.approx(2.0)]


@pytest.mark.parametrize("rate", [0, -1])
def test_set_rate_rejects_non_positive(rate):
    with pytest.raises(ValueError):
        CrawlQueue(rate)


def test_retry_requeues_at_tail_until_limit():
    q, _ = _queue()
    q.add_all(["https://x.dev/1", "https://x.dev/2"])
    target = q.next()
    for attempt in range(1, MAX_RETRIES + 1):
        assert q.retry(target) is True
        assert target.retry_count == attempt
    assert q.get_queued() == ["https://x.dev/2"] + ["https://x.dev/1"] * MAX_RETRIES
    assert q.retry(target) is False
    assert target.retry_count == MAX_RETRIES


def test_visited_tracking_and_clear():
    q, _ = _queue()
    q.mark_visited("https://x.dev/seen")
    assert q.has_visited("https://X.dev/seen#top")
    assert q.add("https://x.dev/seen") is False
    q.add("https://x.dev/new")
    assert q.visited_count == 2
    assert q.get_visited() == ["https://x.dev/new", "https://x.dev/seen"]
    q.clear()
    assert q.size == 0
    assert q.visited_count == 0
