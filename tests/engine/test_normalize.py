from __future__ import annotations

from datetime import date

import pytest

from jobbank_crawler.engine.normalize import (
    build_job_record,
    clean_job_url,
    clean_text,
    extract_job_id,
    normalize_province,
    parse_location,
    parse_posting_date,
    parse_salary,
)
from jobbank_crawler.models import RawListing

BASE_URL = "https://www.jobbank.gc.ca"


def test_clean_text_collapses_whitespace_and_truncates() -> None:
    assert clean_text("  Line\tcook \n\n  wanted ") == "Line cook wanted"
    assert clean_text("abcdef", 3) == "abc"
    assert clean_text(None) == ""


def test_clean_text_strips_labels_only_when_asked() -> None:
    assert clean_text("Location\n  Halifax (NS)", strip_label=True) == "Halifax (NS)"
    assert clean_text("Salary: $20.00 hourly", strip_label=True) == "$20.00 hourly"
    assert clean_text("Salary administrator") == "Salary administrator"


def test_clean_job_url_removes_session_and_query() -> None:
    href = "/jobposting/41234567;jsessionid=8F2A?source=searchresults"
    assert clean_job_url(href, BASE_URL) == "https://www.jobbank.gc.ca/jobposting/41234567"
    absolute = "https://www.jobbank.gc.ca/jobpostingtfw/123?x=1#top"
    assert clean_job_url(absolute, BASE_URL) == "https://www.jobbank.gc.ca/jobpostingtfw/123"
    assert clean_job_url("", BASE_URL) == ""


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://www.jobbank.gc.ca/jobposting/41234567", "41234567"),
        ("https://www.jobbank.gc.ca/jobpostingtfw/998877;jsessionid=1", "998877"),
        ("https://example.com/view?jobid=555", "555"),
        ("https://example.com/other", None),
    ],
)
def test_extract_job_id(url: str, expected: str | None) -> None:
    assert extract_job_id(url) == expected


def test_parse_location_shapes() -> None:
    assert parse_location("Location Toronto (ON)") == ("Toronto", "ON")
    assert parse_location("Surrey, British Columbia") == ("Surrey", "BC")
    assert parse_location("Whitehorse, YT") == ("Whitehorse", "YT")
    assert parse_location("Remote") == ("Remote", None)
    assert parse_location("") == (None, None)


def test_normalize_province_maps_names_and_truncates_unknown() -> None:
    assert normalize_province("Prince Edward Island") == "PE"
    assert normalize_province(" quebec ") == "QC"
    assert normalize_province("X" * 80) == "X" * 50


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("$17.50 hourly", (17.5, 17.5, "hourly")),
        ("$20.00 to $25.00 hourly", (20.0, 25.0, "hourly")),
        ("$60,000.00 to $55,000.00 annually (to be negotiated)", (55000.0, 60000.0, "yearly")),
        ("$3,200 monthly", (3200.0, 3200.0, "monthly")),
        ("$1,500 bi-weekly", (1500.0, 1500.0, "biweekly")),
        ("$800 weekly", (800.0, 800.0, "weekly")),
        ("Salary: To be negotiated", (None, None, "hourly")),
        ("", (None, None, None)),
    ],
)
def test_parse_salary(text: str, expected: tuple) -> None:
    assert parse_salary(text) == expected


def test_parse_posting_date_formats() -> None:
    today = date(2025, 3, 10)
    assert parse_posting_date("January 2, 2025") == date(2025, 1, 2)
    assert parse_posting_date("Jan 02, 2025") == date(2025, 1, 2)
    assert parse_posting_date("2025-01-02") == date(2025, 1, 2)
    assert parse_posting_date("Today", today=today) == today
    assert parse_posting_date("yesterday", today=today) == date(2025, 3, 9)
    assert parse_posting_date("sometime soon") is None
    assert parse_posting_date("") is None


def test_build_job_record_normalises_listing() -> None:
    listing = RawListing(
        external_id="41234567",
        title="  Food service supervisor ",
        employer="",
        location="Location\n Calgary (AB)",
        salary_text="$18.00 to $20.00 hourly",
        date_text="March 3, 2025",
        url="/jobposting/41234567;jsessionid=XYZ?source=searchresults",
        lmia_flag="LMIA",
    )
    record = build_job_record(listing, "run-1", BASE_URL)
    assert record is not None
    assert record.job_bank_id == "41234567"
    assert record.record_key == "41234567"
    assert record.title == "Food service supervisor"
    assert record.employer == "Unknown"
    assert (record.city, record.province) == ("Calgary", "AB")
    assert (record.salary_min, record.salary_max, record.salary_type) == (18.0, 20.0, "hourly")
    assert record.posting_date == date(2025, 3, 3)
    assert record.url == "https://www.jobbank.gc.ca/jobposting/41234567"
    assert record.is_tfw is True
    assert record.has_lmia is True
    assert record.scraping_run_id == "run-1"


def test_build_job_record_falls_back_to_url_identity() -> None:
    listing = RawListing(title="Farm worker", url="https://www.jobbank.gc.ca/jobposting/777")
    record = build_job_record(listing, "run-1", BASE_URL)
    assert record is not None
    assert record.job_bank_id == "777"
    assert record.has_lmia is False

    anonymous = RawListing(title="Farm worker", url="https://example.com/opening")
    record = build_job_record(anonymous, "run-1", BASE_URL)
    assert record is not None
    assert record.job_bank_id is None
    assert record.record_key == "https://example.com/opening"


def test_build_job_record_drops_unidentifiable_listings() -> None:
    assert build_job_record(RawListing(title="Cook"), "run-1", BASE_URL) is None
    assert build_job_record(RawListing(external_id="1", title="ab"), "run-1", BASE_URL) is None


def test_raw_listing_from_payload_ignores_bad_types() -> None:
    listing = RawListing.from_payload(
        {"jobId": " 42 ", "title": "Baker", "employer": None, "salaryText": 17.5, "extra": "x"}
    )
    assert listing.external_id == "42"
    assert listing.title == "Baker"
    assert listing.employer == ""
    assert listing.salary_text == ""
