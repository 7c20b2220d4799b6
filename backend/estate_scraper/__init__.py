"""Zoopla listing scraper: resilient fetch, tiered extraction, canonical records."""
