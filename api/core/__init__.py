"""
Shared, cross-cutting code for the API.

`core/` should contain small building blocks that multiple features use
(settings, upstream HTTP calls, error classification). Keep feature-specific
aggregation logic in the corresponding feature package (e.g. `dashboard/`).
"""
