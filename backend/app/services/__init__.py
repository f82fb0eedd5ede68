"""Workflow services. Each module exposes one singleton service instance."""
