from sitegen.ratelimit import FixedWindowLimiter


def test_window_counts_per_bucket_and_client():
    now = [1000.0]
    limiter = FixedWindowLimiter(60, 2, clock=lambda: now[0])
    assert limiter.allow_request("gen", "a") == (True, 1, 1060)
    assert limiter.allow_request("gen", "a") == (True, 0, 1060)
    assert limiter.allow_request("gen", "a") == (False, 0, 1060)
    assert limiter.allow_request("refine", "a")[0] is True
    assert limiter.allow_request("gen", "b")[0] is True
    assert limiter.retry_after(1060) == 60

    now[0] = 1060.0
    assert limiter.allow_request("gen", "a") == (True, 1, 1120)


def test_non_positive_max_disables_limit():
    limiter = FixedWindowLimiter(60, 0)
    assert all(limiter.allow_request("gen", "a")[0] for _ in range(50))


def test_retry_after_is_at_least_one_second():
    limiter = FixedWindowLimiter(60, 1, clock=lambda: 500.0)
    assert limiter.retry_after(400) == 1
