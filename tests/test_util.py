import pytest

from sclib.util import Rand, bytes_to_size, is_pow2, size_to_bytes, to_pow2

KB = 1024
MB = 1024**2
GB = 1024**3
TB = 1024**4
PB = 1024**5
EB = 1024**6


def _seed(prefix):
    return bytes(prefix) + bytes(256 - len(prefix))


SEED1 = _seed([0, 1, 2, 3, 4, 5, 6, 6, 6, 6, 1, 5, 3, 5, 5, 6])
SEED2 = _seed([0, 1, 2, 3, 4, 3, 6, 6, 6, 6, 1, 2, 3, 5, 5, 6])


@pytest.mark.parametrize(
    "num, expected",
    [(0, False), (1, True), (3, False), (1024, True), (1 << 63, True)],
)
def test_is_pow2(num, expected):
    assert is_pow2(num) is expected


@pytest.mark.parametrize("size, expected", [(0, 1), (1, 1), (1023, 1024), (1024, 1024)])
def test_to_pow2(size, expected):
    result = to_pow2(size)
    assert result == expected
    assert is_pow2(result)


def test_to_pow2_rejects_negative():
    with pytest.raises(ValueError):
        to_pow2(-1)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1", 1),
        ("313", 313),
        ("1b", 1),
        ("1k", KB),
        ("1kb", KB),
        ("1m", MB),
        ("1mb", MB),
        ("1g", GB),
        ("1gb", GB),
        ("1t", TB),
        ("1tb", TB),
        ("1e", EB),
        ("1eb", EB),
        ("1p", PB),
        ("1pb", PB),
        ("2MB", 2 * MB),
    ],
)
def test_size_to_bytes(text, expected):
    assert size_to_bytes(text) == expected


@pytest.mark.parametrize(
    "text",
    [
        "1gx",
        "gx",
        "1xgx",
        "1xb",
        "22eb",
        "31024pb",
        "31024111tb",
        "31024111111gb",
        "31024111111111mb",
        "31024111111111111kb",
        "",
        "99999999999999999999",
    ],
)
def test_size_to_bytes_errors(text):
    with pytest.raises(ValueError):
        size_to_bytes(text)


@pytest.mark.parametrize(
    "val, expected",
    [
        (313, "313 B"),
        (1024, "1.00 KB"),
        (2 * 1024, "2.00 KB"),
        (2 * MB, "2.00 MB"),
        (2 * GB, "2.00 GB"),
        (2 * TB, "2.00 TB"),
        (2 * PB, "2.00 PB"),
        ((1 << 64) - 1, "16.00 EB"),
    ],
)
def test_bytes_to_size(val, expected):
    assert bytes_to_size(val) == expected


def test_bytes_to_size_rejects_negative():
    with pytest.raises(ValueError):
        bytes_to_size(-1)


def test_rand_same_seed_same_output():
    first = Rand(SEED1).read(256)
    second = Rand(SEED1).read(256)
    assert len(first) == 256
    assert len(set(first)) > 1
    assert first == second


def test_rand_different_seed_different_output():
    assert Rand(SEED1).read(256) != Rand(SEED2).read(256)


def test_rand_read_length():
    assert len(Rand(SEED1).read(37)) == 37


def test_rand_read_nothing():
    rnd = Rand(SEED1)
    assert rnd.read(0) == b""
    assert rnd.read(-5) == b""


def test_rand_reads_are_a_stream():
    whole = Rand(SEED1).read(256)
    rnd = Rand(SEED1)
    assert rnd.read(100) + rnd.read(156) == whole


def test_rand_empty_reads_do_not_advance():
    whole = Rand(SEED1).read(16)
    rnd = Rand(SEED1)
    rnd.read(0)
    assert rnd.read(16) == whole


def test_rand_seed_size():
    with pytest.raises(ValueError):
        Rand(b"\x00" * 16)