"""
Feature modules live under this package.

Each module owns its models (where it has any), a service layer and a JSON
blueprint, and reuses the platform primitives (rbac, audit, errors, DB session).
"""
