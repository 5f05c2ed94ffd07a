"""auth/ -- Credentials, bearer tokens, password recovery, and the auth gate.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or audit/.
api/ and audit/ import from auth/, not the other way around.
"""
