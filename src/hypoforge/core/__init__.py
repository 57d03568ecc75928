"""Core run pipeline, responses, errors and request context for hypoforge."""
