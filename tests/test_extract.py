"""Tests for extract module."""

from price_ledger.extract import (
    PRICE_DATABASE_TABLE,
    PRICING_HISTORY_TABLE,
    extract_bracket_key_value,
    extract_last_scan_time,
    extract_table_block,
)

from conftest import SAMPLE_DOCUMENT, SCAN_TIME


def test_extract_table_block_returns_balanced_span():
    content = 'PREFIX = 1\nFOO = {\n  ["a"] = {\n    ["b"] = 1,\n  },\n}\nBAR = { }\n'

    result = extract_table_block(content, "FOO")

    assert result == 'FOO = {\n  ["a"] = {\n    ["b"] = 1,\n  },\n}'


def test_extract_table_block_truncated_input():
    content = 'FOO = {\n  ["a"] = {\n    ["b"] = 1,\n  },\n'

    assert extract_table_block(content, "FOO") is None


def test_extract_table_block_missing_table():
    assert extract_table_block("BAR = {}", "FOO") is None


def test_extract_table_block_uses_first_occurrence():
    content = "FOO = { 1 }\nFOO = { 2 }"

    assert extract_table_block(content, "FOO") == "FOO = { 1 }"


def test_extract_both_tables_from_document():
    price_block = extract_table_block(SAMPLE_DOCUMENT, PRICE_DATABASE_TABLE)
    history_block = extract_table_block(SAMPLE_DOCUMENT, PRICING_HISTORY_TABLE)

    assert price_block is not None
    assert history_block is not None
    assert "Icecrown_Horde" in price_block
    assert PRICING_HISTORY_TABLE not in price_block
    assert history_block.count("{") == history_block.count("}")


def test_extract_last_scan_time():
    assert extract_last_scan_time(SAMPLE_DOCUMENT) == SCAN_TIME
    assert extract_last_scan_time("AUCTIONATOR_PRICE_DATABASE = {}") is None


def test_extract_bracket_key_value():
    assert extract_bracket_key_value('["Frost Lotus"] = 300,') == ("Frost Lotus", "300,")
    assert extract_bracket_key_value('["is"]="36908:0"') == ("is", '"36908:0"')
    assert extract_bracket_key_value("}, -- [1]") is None


def test_extract_last_scan_time_out_of_range(caplog):
    content = "AUCTIONATOR_LAST_SCAN_TIME = 999999999999999\n"

    assert extract_last_scan_time(content) is None
    assert "Ignoring out-of-range AUCTIONATOR_LAST_SCAN_TIME" in caplog.text
