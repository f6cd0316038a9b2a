import pytest

from adtap.commands._builders import format_size, truncate_string


@pytest.mark.parametrize(
    "size, expected",
    [(None, "unknown"), (0, "0B"), (1023, "1023B"), (1536, "1.5K"), (3 * 1024 * 1024, "3.0M")],
)
def test_format_size(size, expected):
    assert format_size(size) == expected


def test_truncate_string():
    assert truncate_string("", 10) == "-"
    assert truncate_string("a\nb", 10) == "a b"
    assert truncate_string("abcdefghijkl", 8) == "abcde..."
