"""
Catalog feature module.

Seeded reference data: plans with limits, modules with dependency edges,
permissions (optionally module-scoped) and roles.
"""
