"""
Module management feature module.

Guarded activate/deactivate transitions over the activation ledger and
the per-organization module status view.
"""
