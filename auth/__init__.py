"""auth/ -- Authentication and authorization core for MemberGate.

Credential store, password hashing, server-side sessions, the auth gate and
role mutation live here; AuthService (auth/service.py) is the entry point.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, web/ or core/.
api/ and web/ import from auth/, not the other way around.
"""
