import pytest

from ledger_tidy.normalize import normalize_description


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("SQ *COFFEE SHOP XX1234", "coffee shop"),
        ("DIRECT DEBIT BRITISH GAS LTD 12345", "british gas ltd"),
        ("POS PURCHASE TESCO STORES 2041", "tesco stores 2041"),
        ("PAYPAL *SPOTIFY", "spotify"),
        ("TST* JOE'S PIZZA", "joe's pizza"),
        ("AMZN Mktp US*2K4Y83", "amzn mktp us"),
        ("CARD PAYMENT TO PRET A MANGER ON 12 MAR", "pret a manger"),
        ("DIVIDEND RECEIVED VANGUARD", "vanguard"),
        ("   Uber    Trip   ", "uber trip"),
    ],
)
def test_normalize_examples(raw: str, expected: str) -> None:
    assert normalize_description(raw) == expected


def test_masked_digits_truncate_everything_after() -> None:
    assert normalize_description("NETFLIX.COM xxxx5678 LOS GATOS") == "netflix.com"
    assert normalize_description("****1234 REFUND") == ""


def test_x_runs_inside_words_are_not_masks() -> None:
    assert normalize_description("EXXON MOBIL 4471") == "exxon mobil 4471"
    assert normalize_description("XXL SPORTS") == "xxl sports"


@pytest.mark.parametrize("raw", [None, "", "   ", "***", "SQ *"])
def test_empty_or_all_noise_yields_empty_key(raw: str | None) -> None:
    assert normalize_description(raw) == ""


@pytest.mark.parametrize(
    "raw",
    [
        "SQ *COFFEE SHOP XX1234",
        "SQ *SQ *DOUBLE TAGGED",
        "POS PURCHASE DIRECT DEBIT GYM",
        "AMZN Mktp US*2K4Y83",
        "paypal *ebay *seller",
        "Whole Foods Market #10234 Austin TX",
    ],
)
def test_idempotent(raw: str) -> None:
    once = normalize_description(raw)
    assert normalize_description(once) == once


def test_token_limit_is_configurable() -> None:
    assert normalize_description("SQ *COFFEE SHOP", max_tokens=1) == "coffee"
    assert normalize_description("one two three four five", max_tokens=4) == "one two three four"


def test_non_positive_token_limit_rejected() -> None:
    with pytest.raises(ValueError):
        normalize_description("anything", max_tokens=0)
