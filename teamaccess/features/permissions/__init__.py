"""
Resource permission feature module.

Grants attach a permission bitmask to a (resource, principal) pair, where the
principal is a team member, a member group or an org node. Effective access is
the OR of every grant reachable from a member.
"""
