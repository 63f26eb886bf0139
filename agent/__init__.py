"""Booking conversation agent: turn graph, state persistence and stream worker."""
