"""Rental vertical: pickup, return and penalty lifecycle for rented items."""
