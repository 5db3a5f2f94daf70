"""Tests for pattern rule lists and content fingerprints."""

import re

from cargoledger.document_registry.fingerprint import (
    clean_subject,
    compute_content_fingerprint,
    compute_email_fingerprint,
    normalize_text,
)
from cargoledger.document_registry.patterns import (
    FILENAME_REFERENCE_RULES,
    PatternRule,
    classify_by_filename,
    detect_carrier,
    extract_version_label,
    first_match,
    map_document_type,
    version_status_for_label,
)


# ── first_match ──


class TestFirstMatch:
    """Rules are tried in declared order; the first match wins."""

    def test_earlier_rule_wins(self):
        rules = [
            PatternRule("digits", re.compile(r"(\d+)"), lambda m: "first"),
            PatternRule("any", re.compile(r"(.+)"), lambda m: "second"),
        ]
        match = first_match(rules, "abc 123")
        assert match.value == "first"
        assert match.rule.name == "digits"

    def test_falls_through_to_later_rule(self):
        rules = [
            PatternRule("digits", re.compile(r"(\d+)"), lambda m: m.group(1)),
            PatternRule("word", re.compile(r"([a-z]+)"), lambda m: m.group(1)),
        ]
        assert first_match(rules, "abc").value == "abc"

    def test_empty_text(self):
        assert first_match(FILENAME_REFERENCE_RULES, None) is None
        assert first_match(FILENAME_REFERENCE_RULES, "") is None

    def test_carrier_specific_before_generic(self):
        match = first_match(FILENAME_REFERENCE_RULES, "HL-12345678 booking.pdf")
        assert match.rule.name == "hapag_booking"
        assert match.value == "12345678"
        assert match.rule.carrier == "HLCU"

    def test_maersk_bl(self):
        match = first_match(FILENAME_REFERENCE_RULES, "MAEU262822342 draft.pdf")
        assert match.rule.name == "maersk_bl"
        assert match.value == "MAEU262822342"

    def test_generic_eight_digit(self):
        match = first_match(FILENAME_REFERENCE_RULES, "BC_87654321.pdf")
        assert match.rule.name == "eight_digit"
        assert match.value == "87654321"


class TestVersionLabels:
    def test_ordinal_update(self):
        assert extract_version_label("BC 3RD UPDATE 12345678.pdf") == "3rd Update"

    def test_underscore_separated(self):
        assert extract_version_label("SI_DRAFT_2_12345678.pdf") == "Draft 2"

    def test_final_before_version(self):
        assert extract_version_label("HBL FINAL V2.pdf") == "Final"

    def test_revision(self):
        assert extract_version_label("checklist rev 3.pdf") == "Revision 3"

    def test_no_label(self):
        assert extract_version_label("invoice.pdf") is None

    def test_status_for_label(self):
        assert version_status_for_label("Final") == "final"
        assert version_status_for_label("3rd Update") == "amended"
        assert version_status_for_label("Revision 2") == "amended"
        assert version_status_for_label("Draft 2") == "draft"
        assert version_status_for_label(None) == "draft"


class TestDocumentTypes:
    def test_map_known_labels(self):
        assert map_document_type("SI Draft") == "shipping_instructions"
        assert map_document_type("booking-amendment") == "booking_confirmation"
        assert map_document_type("HBL") == "house_bl"

    def test_map_unknown(self):
        assert map_document_type("mystery") is None
        assert map_document_type(None) is None

    def test_classify_by_filename(self):
        assert classify_by_filename("Booking Confirmation 12345678.pdf") == "booking_confirmation"
        assert classify_by_filename("CHECK LIST 12345678.pdf") == "checklist"
        assert classify_by_filename("random.pdf") == "other"

    def test_detect_carrier(self):
        assert detect_carrier("Hapag-Lloyd booking", None) == "HLCU"
        assert detect_carrier(None, "Maersk Line") == "MAEU"
        assert detect_carrier("plain.pdf") is None


# ── Fingerprints ──


class TestContentFingerprint:
    def test_sha256_hex(self):
        digest = compute_content_fingerprint("hello")
        assert len(digest) == 64
        assert all(c in "0123456789abcdef" for c in digest)

    def test_whitespace_and_line_endings_normalized(self):
        a = compute_content_fingerprint("Booking  No: 123\r\n\r\nShipper: ACME  ")
        b = compute_content_fingerprint("Booking No: 123\nShipper: ACME")
        assert a == b

    def test_different_content(self):
        assert compute_content_fingerprint("a") != compute_content_fingerprint("b")

    def test_bytes_hashed_raw(self):
        assert compute_content_fingerprint(b"  x  ") != compute_content_fingerprint(b"x")

    def test_normalize_text_drops_blank_lines(self):
        assert normalize_text("a\n\n  \n b  c ") == "a\nb c"


class TestEmailFingerprint:
    def test_reply_prefixes_ignored(self):
        a = compute_email_fingerprint("RE: FW: Booking 123", "Ops@Example.com", "body")
        b = compute_email_fingerprint("Booking 123", "ops@example.com", "body")
        assert a == b
        assert len(a) == 32

    def test_clean_subject(self):
        assert clean_subject("Re: Fwd: SI draft") == "SI draft"
        assert clean_subject(None) == ""
