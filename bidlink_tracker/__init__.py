"""Duplicate job-link detection for weekly Google Sheets tabs."""
