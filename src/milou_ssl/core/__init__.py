"""Core enums, state machines, errors and cancellation primitives."""
