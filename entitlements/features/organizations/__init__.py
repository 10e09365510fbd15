"""
Organization (tenant) state feature module.

Subscriptions, the module activation ledger and memberships.
"""
