"""
Permission management feature module.

Builds the per-request PermissionContext of a (user, organization) pair and
answers authorization queries against it. Role permissions are gated by
module activation: a permission scoped to an inactive module is never granted.
"""
