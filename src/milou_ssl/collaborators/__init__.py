"""Narrow interfaces to the outside world and their implementations."""
