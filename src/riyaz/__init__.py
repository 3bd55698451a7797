"""Riyaz practice tracking API."""
