"""auth/ -- Identity service for OrgVault: users, password hashing, JWTs, FastAPI dependencies.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/, org/, or vault/.
api/ imports from auth/, not the other way around.
"""
