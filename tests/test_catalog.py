from dataclasses import replace

from ledger_audit.catalog import _GSTIN_CHARSET, gstin_checksum_valid


def test_known_gstin_checksum():
    assert gstin_checksum_valid("27AAPFU0939F1ZV")


def test_exactly_one_check_character_is_valid():
    prefix = "27AAPFU0939F1Z"
    valid = [ch for ch in _GSTIN_CHARSET if gstin_checksum_valid(prefix + ch)]
    assert valid == ["V"]


def test_checksum_rejects_wrong_length():
    assert not gstin_checksum_valid("27AAPFU0939F1Z")
    assert not gstin_checksum_valid(None)


def test_gstin_format_without_checksum(catalog):
    assert catalog.is_valid_gstin("27AAPFU0939F1ZA")
    assert catalog.is_valid_gstin(" 27aapfu0939f1zv ")
    assert not catalog.is_valid_gstin("27AAPFU0939F1XV")
    assert not catalog.is_valid_gstin("")


def test_gstin_checksum_when_enabled(catalog):
    strict = replace(catalog, verify_gstin_checksum=True)
    assert strict.is_valid_gstin("27AAPFU0939F1ZV")
    assert not strict.is_valid_gstin("27AAPFU0939F1ZA")


def test_pan_format(catalog):
    assert catalog.is_valid_pan("AAPFU0939F")
    assert not catalog.is_valid_pan("AAPF0939F")
    assert not catalog.is_valid_pan(None)


def test_deduction_section_lookup(catalog):
    section, keyword = catalog.deduction_section_for("Freight Charges")
    assert (section.section, keyword) == ("194C", "freight")

    section, keyword = catalog.deduction_section_for("Office Rent")
    assert (section.section, keyword) == ("194I", "rent")

    assert catalog.deduction_section_for("Stationery") is None


def test_default_catalog_required_ledgers(catalog):
    rule_ids = [ledger.rule_id for ledger in catalog.required_tax_ledgers]
    assert rule_ids[:6] == [
        "GST_OUTPUT_IGST_MISSING", "GST_OUTPUT_CGST_MISSING", "GST_OUTPUT_SGST_MISSING",
        "GST_INPUT_IGST_MISSING", "GST_INPUT_CGST_MISSING", "GST_INPUT_SGST_MISSING",
    ]
    assert "TDS_194C_MISSING" in rule_ids
