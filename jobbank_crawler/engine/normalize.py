"""Turn raw listing text into normalised job records."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from urllib.parse import urljoin
from zoneinfo import ZoneInfo

from ..models import JobRecord, RawListing

LISTING_TIMEZONE = ZoneInfo("America/Toronto")

TITLE_MAX = 500
EMPLOYER_MAX = 500
LOCATION_MAX = 200
CITY_MAX = 150
PROVINCE_MAX = 50

PROVINCE_CODES = {
    "alberta": "AB",
    "british columbia": "BC",
    "manitoba": "MB",
    "new brunswick": "NB",
    "newfoundland and labrador": "NL",
    "northwest territories": "NT",
    "nova scotia": "NS",
    "nunavut": "NU",
    "ontario": "ON",
    "prince edward island": "PE",
    "quebec": "QC",
    "québec": "QC",
    "saskatchewan": "SK",
    "yukon": "YT",
}

DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%Y-%m-%d")

_WHITESPACE_RE = re.compile(r"\s+")
_LABEL_RE = re.compile(r"^(?:location|salary|date posted|posted on)\s*:?\s*", re.IGNORECASE)
_PAREN_PROVINCE_RE = re.compile(r"^(?P<city>.+?)\s*\((?P<province>[A-Za-z]{2})\)\s*$")
_AMOUNT_RE = re.compile(r"\$?(\d[\d,]*(?:\.\d+)?)")
_JOB_ID_RES = (
    re.compile(r"/jobposting(?:tfw)?/(\d+)"),
    re.compile(r"jobid=(\d+)", re.IGNORECASE),
)


def clean_text(
    value: str | None, max_length: int | None = None, *, strip_label: bool = False
) -> str:
    """Collapse whitespace, optionally drop a leading field label, and truncate."""

    if not value:
        return ""
    text = _WHITESPACE_RE.sub(" ", value).strip()
    if strip_label:
        text = _LABEL_RE.sub("", text).strip()
    if max_length is not None:
        text = text[:max_length]
    return text


def extract_job_id(url: str) -> str | None:
    for pattern in _JOB_ID_RES:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def clean_job_url(href: str, base_url: str) -> str:
    """Resolve ``href`` against the site and strip session ids and query strings."""

    if not href:
        return ""
    url = urljoin(base_url.rstrip("/") + "/", href.strip())
    url = url.split(";jsessionid=", 1)[0]
    url = url.split("?", 1)[0]
    return url.split("#", 1)[0]


def normalize_province(province: str) -> str:
    value = province.strip()
    code = PROVINCE_CODES.get(value.lower())
    if code:
        return code
    return value[:PROVINCE_MAX]


def parse_location(location: str) -> tuple[str | None, str | None]:
    """Return ``(city, province)`` from ``"City (ON)"`` or ``"City, Province"``."""

    text = clean_text(location, strip_label=True)
    if not text:
        return None, None
    match = _PAREN_PROVINCE_RE.match(text)
    if match:
        city = match.group("city").strip()[:CITY_MAX] or None
        return city, match.group("province").upper()
    parts = [part.strip() for part in text.split(",")]
    if len(parts) >= 2:
        city = parts[0][:CITY_MAX] or None
        province = normalize_province(parts[-1]) or None
        return city, province
    return text[:CITY_MAX], None


def detect_salary_type(text: str) -> str:
    lowered = text.lower()
    if "year" in lowered or "annual" in lowered:
        return "yearly"
    if "month" in lowered:
        return "monthly"
    if "bi-weekly" in lowered or "biweekly" in lowered:
        return "biweekly"
    if "week" in lowered:
        return "weekly"
    return "hourly"


def parse_salary(salary_text: str) -> tuple[float | None, float | None, str | None]:
    """Return ``(min, max, type)``; empty text yields three Nones."""

    text = clean_text(salary_text, strip_label=True)
    if not text:
        return None, None, None
    amounts: list[float] = []
    for raw in _AMOUNT_RE.findall(text):
        try:
            amounts.append(float(raw.replace(",", "")))
        except ValueError:
            continue
    salary_type = detect_salary_type(text)
    if not amounts:
        return None, None, salary_type
    if len(amounts) == 1:
        return amounts[0], amounts[0], salary_type
    low, high = amounts[0], amounts[1]
    if low > high:
        low, high = high, low
    return low, high, salary_type


def parse_posting_date(date_text: str, today: date | None = None) -> date | None:
    """Best-effort posting date; anything unrecognised yields None."""

    text = clean_text(date_text, strip_label=True)
    if not text:
        return None
    lowered = text.lower()
    if lowered in ("today", "yesterday"):
        current = today or datetime.now(LISTING_TIMEZONE).date()
        return current if lowered == "today" else current - timedelta(days=1)
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def build_job_record(
    listing: RawListing,
    run_id: str,
    base_url: str,
    today: date | None = None,
) -> JobRecord | None:
    """Normalise one listing; listings without a title or any identity are dropped."""

    title = clean_text(listing.title, TITLE_MAX)
    if len(title) <= 2:
        return None
    job_id = listing.external_id.strip() or extract_job_id(listing.url)
    url = clean_job_url(listing.url, base_url)
    if not job_id and not url:
        return None

    location = clean_text(listing.location, LOCATION_MAX, strip_label=True)
    city, province = parse_location(location)
    salary_raw = clean_text(listing.salary_text, strip_label=True) or None
    salary_min, salary_max, salary_type = parse_salary(salary_raw or "")

    return JobRecord(
        title=title,
        employer=clean_text(listing.employer, EMPLOYER_MAX) or "Unknown",
        location=location,
        url=url,
        scraping_run_id=run_id,
        job_bank_id=job_id or None,
        city=city,
        province=province,
        salary_raw=salary_raw,
        salary_min=salary_min,
        salary_max=salary_max,
        salary_type=salary_type,
        posting_date=parse_posting_date(listing.date_text, today=today),
        is_tfw=True,
        has_lmia=bool(clean_text(listing.lmia_flag)),
    )


__all__ = [
    "PROVINCE_CODES",
    "build_job_record",
    "clean_job_url",
    "clean_text",
    "detect_salary_type",
    "extract_job_id",
    "normalize_province",
    "parse_location",
    "parse_posting_date",
    "parse_salary",
]
