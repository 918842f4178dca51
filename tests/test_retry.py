
import pytest

from quietdrop.utils import retry


def test_retry_succeeds_after_failures():
    attempts = {"n": 0}

    def flaky():
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise RuntimeError("fail")
        return "ok"

    result = retry(flaky, retries=5, base_delay=0.01)
    assert result == "ok"
    assert attempts["n"] == 3


def test_retry_gives_up():
    seen = []

    def broken():
        raise RuntimeError("fail")

    with pytest.raises(RuntimeError):
        retry(broken, retries=2, base_delay=0.01, on_retry=lambda n, e: seen.append(n))
    assert seen == [1, 2]


def test_retry_only_listed_exceptions():
    def wrong():
        raise KeyError("x")

    with pytest.raises(KeyError):
        retry(wrong, retries=5, base_delay=0.01, exc_types=(RuntimeError,))
