"""Offline patient records for hospital home-care teams."""
