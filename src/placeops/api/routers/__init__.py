"""API routers package.

Each router module owns one API domain and delegates to ``placeops.ops``
for business logic.
"""
