"""Concurrent scraper for Job Bank Temporary Foreign Worker postings."""

__version__ = "0.1.0"
