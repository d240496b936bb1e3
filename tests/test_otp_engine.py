"""Tests for the OTPEngine — derivation, drift tolerance and input handling."""

import pytest

from brick_counter.config import Settings
from brick_counter.errors import ConfigurationError
from brick_counter.services.otp_engine import OTPEngine
from conftest import GOLDEN_CODES, SECRET, FakeClock


@pytest.fixture
def engine(clock: FakeClock) -> OTPEngine:
    return OTPEngine(SECRET, interval_seconds=10, mask_bits=10, clock=clock)


# ── Derivation ───────────────────────────────────────────

@pytest.mark.parametrize("window, expected", sorted(GOLDEN_CODES.items()))
def test_code_for_matches_golden_values(engine, window, expected):
    assert engine.code_for(window) == expected


def test_code_for_is_stable_across_instances():
    first = OTPEngine(SECRET)
    second = OTPEngine(SECRET.encode("utf-8"))
    assert [first.code_for(w) for w in range(500, 520)] == [second.code_for(w) for w in range(500, 520)]


def test_different_secrets_give_different_sequences():
    a = OTPEngine("abc")
    b = OTPEngine("abd")
    assert [a.code_for(w) for w in range(100)] != [b.code_for(w) for w in range(100)]


def test_codes_stay_in_range_for_each_mask_width():
    for bits, top in ((9, 512), (10, 1024)):
        engine = OTPEngine(SECRET, mask_bits=bits)
        assert engine.max_code == top
        codes = {engine.code_for(w) for w in range(5000)}
        assert min(codes) >= 1
        assert max(codes) <= top


def test_nine_bit_mask_golden_value():
    assert OTPEngine(SECRET, mask_bits=9).code_for(1000) == 379


def test_window_for_floors_unix_seconds(engine):
    assert engine.window_for(10_000.0) == 1000
    assert engine.window_for(10_009.999) == 1000
    assert engine.window_for(10_010.0) == 1001


# ── Validation ───────────────────────────────────────────

def test_code_valid_in_its_own_window(engine):
    assert engine.validate("379", now=10_000.0)
    assert engine.validate("379", now=10_009.9)


def test_code_valid_one_window_later(engine):
    assert engine.validate("379", now=10_010.0)
    assert engine.validate("379", now=10_019.9)


def test_code_invalid_two_windows_later(engine):
    assert not engine.validate("379", now=10_020.0)


def test_code_for_next_window_not_accepted_early(engine):
    # 445 belongs to window 1001; at window 1000 it is not yet valid.
    assert not engine.validate("445", now=10_005.0)


def test_previous_window_code_accepted(engine):
    assert engine.validate("481", now=10_005.0)


def test_validate_uses_engine_clock(engine, clock):
    assert engine.validate("379")
    clock.advance(20)
    assert not engine.validate("379")
    assert engine.validate(str(GOLDEN_CODES[1002]))


def test_validate_accepts_int_and_surrounding_whitespace(engine):
    assert engine.validate(379, now=10_005.0)
    assert engine.validate(" 379\n", now=10_005.0)
    assert engine.validate("0379", now=10_005.0)


@pytest.mark.parametrize(
    "claimed",
    [None, "", "   ", "abc", "-379", "+379", "3.79", "379abc", "٣٧٩", "0", "1025", "99999999999", True],
)
def test_validate_fails_closed_on_bad_input(engine, claimed):
    assert engine.validate(claimed, now=10_005.0) is False


def test_out_of_range_for_nine_bit_mask():
    engine = OTPEngine(SECRET, mask_bits=9)
    assert not engine.validate("513", now=10_005.0)
    assert engine.validate("379", now=10_005.0)


# ── Cache ────────────────────────────────────────────────

def test_current_code_memoizes_until_window_ends(engine):
    assert engine.current_code(10_001.0) == 379
    assert not engine.purge_cache(10_009.0)
    assert engine.purge_cache(10_010.0)
    assert not engine.purge_cache(10_010.0)


def test_cache_never_serves_wrong_window(engine):
    assert engine.current_code(10_005.0) == 379
    # Cache still holds window 1000 but we are now in window 1002.
    assert engine.current_code(10_025.0) == GOLDEN_CODES[1002]
    assert not engine.validate("379", now=10_025.0)


def test_purge_does_not_change_results(engine):
    engine.validate("379", now=10_005.0)
    before = engine.validate("379", now=10_015.0)
    engine.purge_cache(10_015.0)
    assert engine.validate("379", now=10_015.0) == before


# ── Configuration ────────────────────────────────────────

def test_from_settings_requires_secret():
    with pytest.raises(ConfigurationError):
        OTPEngine.from_settings(Settings(otp_secret=""))


def test_from_settings_uses_configured_values(clock):
    engine = OTPEngine.from_settings(
        Settings(otp_secret=SECRET, otp_interval_seconds=10, otp_mask_bits=9), clock=clock
    )
    assert engine.max_code == 512
    assert engine.interval_seconds == 10
    assert engine.validate("379")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"secret": ""},
        {"secret": SECRET, "interval_seconds": 0},
        {"secret": SECRET, "mask_bits": 0},
        {"secret": SECRET, "mask_bits": 17},
        {"secret": SECRET, "hash_name": "not-a-hash"},
    ],
)
def test_invalid_configuration_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        OTPEngine(**kwargs)
