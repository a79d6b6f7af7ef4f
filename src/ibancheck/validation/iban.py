from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ibancheck.validation.registry import lookup_length

log = logging.getLogger(__name__)

_CHUNK = 9


class NumeralError(ValueError):
    """Raised when a character has no base-36 digit value."""


class EmptyBatchError(ValueError):
    """Raised when a batch evaluation is requested without any candidate."""


@dataclass(frozen=True)
class Verdict:
    iban: str
    is_alphanumeric: bool = False
    is_valid_country: bool = False
    is_correct_length: bool = False
    is_divisible_by_97: bool = False

    @property
    def is_valid(self) -> bool:
        return (
            self.is_alphanumeric
            and self.is_valid_country
            and self.is_correct_length
            and self.is_divisible_by_97
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iban": self.iban,
            "isAlphanumeric": self.is_alphanumeric,
            "isValidCountry": self.is_valid_country,
            "isCorrectLength": self.is_correct_length,
            "isDivisibleBy97": self.is_divisible_by_97,
        }


@dataclass(frozen=True)
class IbanParts:
    country_code: str
    check_digits: int
    bban: str


def normalize_iban(s: str) -> str:
    """Normalize IBAN-like string: remove spaces, upper-case."""
    return re.sub(r"\s+", "", (s or "")).upper()


def split_iban(candidate: str) -> Optional[IbanParts]:
    """Split into country code, check digits and BBAN; None when the prefix is malformed."""
    if len(candidate) < 4:
        return None
    check = candidate[2:4]
    if not all("0" <= ch <= "9" for ch in check):
        return None
    return IbanParts(country_code=candidate[:2], check_digits=int(check), bban=candidate[4:])


def rearrange(candidate: str) -> str:
    # Move first 4 chars to the end
    return candidate[4:] + candidate[:4]


def to_numeral(text: str) -> str:
    """
    Expand every character to its base-36 value written in decimal:
    digits stay as they are, letters A..Z (either case) become 10..35.
    """
    out: List[str] = []
    for ch in text:
        if "0" <= ch <= "9":
            out.append(ch)
        elif "A" <= ch <= "Z":
            out.append(str(ord(ch) - 55))
        elif "a" <= ch <= "z":
            out.append(str(ord(ch) - 87))
        else:
            raise NumeralError(f"no base-36 value for {ch!r}")
    return "".join(out)


def mod97(numeral: str) -> int:
    """Remainder of a decimal numeral of any length modulo 97."""
    if not numeral.isdigit() or not numeral.isascii():
        raise NumeralError(f"not a decimal numeral: {numeral!r}")
    # mod 97 in chunks, the running remainder never exceeds two digits
    rem = 0
    for i in range(0, len(numeral), _CHUNK):
        rem = int(str(rem) + numeral[i:i + _CHUNK]) % 97
    return rem


def _passes_mod97(candidate: str) -> bool:
    try:
        return mod97(to_numeral(rearrange(candidate))) == 1
    except NumeralError:
        # unicode letters/digits pass isalnum() but have no base-36 value
        return False


def evaluate(candidate: str) -> Verdict:
    """
    Evaluate one IBAN candidate, verbatim (no trimming or case folding).

    Strings shorter than two characters or containing anything other than
    letters and digits fail every check. Otherwise country, length and the
    MOD 97-10 checksum are judged independently of each other.
    """
    if len(candidate) < 2:
        return Verdict(iban=candidate)
    if not candidate.isalnum():
        return Verdict(iban=candidate)

    expected = lookup_length(candidate[:2])
    return Verdict(
        iban=candidate,
        is_alphanumeric=True,
        is_valid_country=expected is not None,
        is_correct_length=expected is not None and expected == len(candidate),
        is_divisible_by_97=_passes_mod97(candidate),
    )


def evaluate_batch(candidates: Iterable[str], *, workers: int = 1) -> List[Verdict]:
    """
    Evaluate candidates independently, returning verdicts in input order.

    With workers > 1 the candidates are spread over a thread pool; evaluation
    touches no shared mutable state so no locking is involved.
    """
    items = list(candidates)
    if not items:
        raise EmptyBatchError("at least one IBAN candidate is required")

    workers = max(1, int(workers or 1))
    if workers == 1 or len(items) == 1:
        verdicts = [evaluate(c) for c in items]
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(items))) as pool:
            verdicts = list(pool.map(evaluate, items))

    log.debug(
        "Batch evaluated: size=%s valid=%s workers=%s",
        len(verdicts),
        sum(1 for v in verdicts if v.is_valid),
        workers,
    )
    return verdicts
