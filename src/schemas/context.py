"""Caller context supplied by the admin tenant resolver."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AdminContext:
    """Authorized caller identity for a single request.

    The pipeline trusts this value as given; tenant scoping of every lookup
    is driven by ``tenant_id``.

    Attributes:
        tenant_id: Tenant the request acts on
        user_id: Acting user, recorded as uploader / clip author
        is_admin: Whether the caller holds an admin role
        is_super_admin: Whether the caller holds the super-admin role
    """

    tenant_id: str
    user_id: str | None = None
    is_admin: bool = True
    is_super_admin: bool = False

    @property
    def actor(self) -> str:
        """Name recorded in created_by / updated_by columns."""
        return self.user_id or "editor"
