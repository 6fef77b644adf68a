import itertools
import random
import re
from datetime import datetime, timedelta, timezone

from ids import iso_utc, make_id, to_base36


def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"
    for value in (1, 1295, 1296, 1700000000000):
        assert int(to_base36(value), 36) == value


def test_id_layout():
    new_id = make_id("SJ", clock=lambda: 1700000000000, rng=random.Random(1))
    stamp = to_base36(1700000000000).upper()
    assert re.fullmatch(rf"SJ{stamp}[0-9A-Z]{{5}}", new_id)


def test_ids_unique_across_10000_calls():
    ticks = itertools.count(1700000000000)
    ids = {make_id("U", clock=lambda: next(ticks)) for _ in range(10000)}
    assert len(ids) == 10000


def test_ids_within_one_millisecond_differ_by_random_suffix():
    rng = random.Random(20240305)
    ids = {make_id("U", clock=lambda: 1700000000000, rng=rng) for _ in range(200)}
    assert len(ids) == 200


def test_iso_utc_normalises_to_utc_with_millis():
    ist = timezone(timedelta(hours=5, minutes=30))
    assert iso_utc(datetime(2024, 3, 5, 19, 37, 30, 123456, tzinfo=ist)) == "2024-03-05T14:07:30.123Z"
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", iso_utc())
