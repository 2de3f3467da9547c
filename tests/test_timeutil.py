import time

from partitionlink.timeutil import now_ts


def test_now_ts_is_milliseconds_since_epoch():
    before = int(time.time() * 1000)
    value = now_ts()
    after = int(time.time() * 1000)
    assert before - 1 <= value <= after + 1


def test_now_ts_returns_int():
    value = now_ts()
    assert isinstance(value, int) and value > 0


def test_now_ts_does_not_go_backwards_between_calls():
    first = now_ts()
    second = now_ts()
    assert second >= first