"""
Authentication and authorization package for the alumni community.

Provides:
- OIDC (discovery, authorization code, refresh token) adapter
- Optional OAuth2 profile-provider adapter
- Server-side sessions with transparent token refresh
- Approved-member and admin gates as FastAPI dependencies
"""
