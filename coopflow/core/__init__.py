"""Core workflow components: approval engine, RBAC, audit and eligibility."""
