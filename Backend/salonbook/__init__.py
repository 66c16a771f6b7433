"""Salon availability and booking service."""
