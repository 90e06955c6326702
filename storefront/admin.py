from . import settings


def is_admin_email(email: str | None, allowlist: list[str] | None = None) -> bool:
    """Allowlist check for admin access.

    With an empty ``ADMIN_EMAILS`` allowlist every authenticated caller is
    an admin.
    """
    if not email:
        return False
    allowed = settings.ADMIN_EMAILS if allowlist is None else allowlist
    if not allowed:
        return True
    return email.strip().lower() in allowed
