from datetime import UTC, datetime, timedelta

import pytest

from minion_hive.formatting import human_age, human_size


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, "0.0B"),
        (1023, "1023.0B"),
        (1024, "1.0KB"),
        (1536, "1.5KB"),
        (5 * 1024 * 1024, "5.0MB"),
        (3 * 1024**3, "3.0GB"),
    ],
)
def test_human_size(size, expected):
    assert human_size(size) == expected


def test_human_age():
    now = datetime(2024, 5, 10, 12, tzinfo=UTC)

    assert human_age(now - timedelta(days=3, hours=4, minutes=59), now) == "3d 4h"
    assert human_age(now - timedelta(hours=5), now) == "5h"
    assert human_age(now + timedelta(hours=1), now) == "0h"
