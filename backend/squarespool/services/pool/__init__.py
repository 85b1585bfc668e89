"""Pool domain services: grid, settlement, game clock, props.

``settlement``, ``numbers``, ``quarters`` and ``grading`` are pure and take
plain values or model instances; the remaining modules orchestrate the
database session and are what HTTP routes, socket handlers and CLI commands
import.
"""
