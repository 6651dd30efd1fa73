"""org/ -- Organisational Units, Divisions and user memberships.

Layer rule: org/ imports from core/ only. It does NOT import from api/,
auth/, or vault/.
"""
