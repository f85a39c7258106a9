"""Guild dashboard access rules.

A user may manage a guild's shop when any one grant source applies:
they own the guild, they are on the guild's authorized-users list, or
they carry the platform-admin flag.
"""

from collections.abc import Collection


def has_guild_access(
    discord_id: str | None,
    *,
    owner_discord_id: str | None,
    authorized_discord_ids: Collection[str],
    is_platform_admin: bool,
) -> bool:
    """Return True if the user holds any grant for the guild."""
    if is_platform_admin:
        return True
    if not discord_id:
        return False

    # Snowflakes arrive as str or int depending on the source
    user = str(discord_id)
    if owner_discord_id is not None and str(owner_discord_id) == user:
        return True
    return user in {str(a) for a in authorized_discord_ids}
