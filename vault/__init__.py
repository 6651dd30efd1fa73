"""vault/ -- Credential Catalog and the identity-driven credential operations.

Layer rule: vault/ imports from core/ and org/. It does NOT import from api/
or auth/.
"""
