"""
RBAC (Role-Based Access Control) authorization engine.

Provides:
- Roles with protected system roles and a guarded lifecycle
- Entity-level permissions with field wildcards and mask types
- Per-resource grant/deny overrides
- User-role assignments
- Append-only audit trail of every policy mutation
"""
