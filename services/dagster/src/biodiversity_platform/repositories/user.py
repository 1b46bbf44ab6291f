from __future__ import annotations

from sqlalchemy import text

from biodiversity_platform.constants import ADMIN_ROLES
from biodiversity_platform.repositories.base import BaseRepository


class UserRepository(BaseRepository):
    def get_system_user_roles(self, system_user_id: int | None) -> list[str]:
        if system_user_id is None:
            return []
        rows = self.connection.execute(
            text(
                """
                SELECT sr.name
                FROM system_user_role sur
                JOIN system_role sr ON sr.system_role_id = sur.system_role_id
                WHERE sur.system_user_id = :system_user_id
                ORDER BY sr.name
                """
            ),
            {"system_user_id": system_user_id},
        ).fetchall()
        return [row.name for row in rows]

    def is_system_user_admin(self) -> bool:
        roles = self.get_system_user_roles(self.connection.system_user_id)
        return any(role in ADMIN_ROLES for role in roles)
