from __future__ import annotations

import pytest

from ibancheck.validation.iban import EmptyBatchError, evaluate, evaluate_batch

CANDIDATES = [
    "DE89370400440532013000",
    "",
    "XX89370400440532013000",
    "DE89370400440532013001",
    "BH02CITI00001077181611",
    "DE89 3704",
]


def test_batch_preserves_input_order() -> None:
    verdicts = evaluate_batch(CANDIDATES)
    assert [v.iban for v in verdicts] == CANDIDATES
    assert [v.is_valid for v in verdicts] == [True, False, False, False, True, False]


def test_batch_matches_single_evaluation() -> None:
    assert evaluate_batch(CANDIDATES) == [evaluate(c) for c in CANDIDATES]


def test_threaded_batch_matches_sequential() -> None:
    many = CANDIDATES * 50
    assert evaluate_batch(many, workers=8) == evaluate_batch(many, workers=1)


def test_batch_accepts_any_iterable() -> None:
    verdicts = evaluate_batch(c for c in ("GT20AGRO00000000001234567890",))
    assert len(verdicts) == 1 and verdicts[0].is_valid


@pytest.mark.parametrize("workers", [0, None, -3])
def test_non_positive_workers_fall_back_to_sequential(workers) -> None:
    assert evaluate_batch(["DE89370400440532013000"], workers=workers)[0].is_valid


@pytest.mark.parametrize("empty", [[], (), iter([])])
def test_empty_batch_is_usage_error(empty) -> None:
    with pytest.raises(EmptyBatchError):
        evaluate_batch(empty)
    assert issubclass(EmptyBatchError, ValueError)
