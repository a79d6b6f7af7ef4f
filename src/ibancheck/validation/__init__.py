from .iban import (
    EmptyBatchError,
    IbanParts,
    NumeralError,
    Verdict,
    evaluate,
    evaluate_batch,
    normalize_iban,
    split_iban,
)
from .registry import IBAN_LENGTHS, country_codes, is_known_country, lookup_length

__all__ = [
    "EmptyBatchError",
    "IbanParts",
    "NumeralError",
    "Verdict",
    "evaluate",
    "evaluate_batch",
    "normalize_iban",
    "split_iban",
    "IBAN_LENGTHS",
    "country_codes",
    "is_known_country",
    "lookup_length",
]
