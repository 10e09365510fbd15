"""
Entitlement feature module.

Resolves an organization's plan, active modules and remaining capacity,
and audits organizations for entitlement inconsistencies.
"""
