"""
ORM models.

Importing the package registers every mapped class on `Base.metadata`, so string
relationship targets ("Employee", "OrgNode") always resolve.
"""

from orgauthz.models import audit, hr, org, security  # noqa: F401
