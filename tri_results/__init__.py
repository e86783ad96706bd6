"""Yearly results scraper for multi-year triathlon race series."""
