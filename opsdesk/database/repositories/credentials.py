"""
Credential vault repository.

Secrets are Fernet-encrypted at rest and never part of a list or detail
view; only superadmins can write entries or reveal a secret. Other users
see the masked entries of their own department.
"""

import logging
from typing import Optional, List, Any

from cryptography.fernet import InvalidToken
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import get_database
from ..models import CredentialDB
from ..exceptions import NotFoundError, ForbiddenError, BackendError
from .audit import record_audit, row_snapshot
from .lookups import resolve_department
from ...config import settings
from ...models.api_validation import CredentialCreate, CredentialUpdate, CredentialFilter, CredentialSort
from ...models.records import MaskedCredential
from ...utils.datetime_utils import get_local_now
from ...utils.encryption import get_credential_encryption
from ...utils.errors import backend_errors
from ...utils.permissions import UserContext, require_superadmin
from ...utils.validation import parse_input, contains_pattern

logger = logging.getLogger(__name__)

ENTITY = "credential"


def _mask(row: CredentialDB) -> MaskedCredential:
    return MaskedCredential(
        id=row.id,
        name=row.name,
        category=row.category,
        url=row.url,
        username=row.username,
        has_password=bool(row.password_encrypted),
        notes=row.notes,
        department_id=row.department_id,
        last_used_at=row.last_used_at,
        last_used_by=row.last_used_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class CredentialRepository:
    """Repository for credential vault operations."""

    def __init__(self):
        self.db = get_database()
        self.encryption = get_credential_encryption()

    async def _get_live_row(self, session: AsyncSession, credential_id: int) -> CredentialDB:
        result = await session.execute(
            select(CredentialDB).where(
                CredentialDB.id == credential_id,
                CredentialDB.deleted_at.is_(None),
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(ENTITY, credential_id)
        return row

    @staticmethod
    def _ensure_visible(ctx: UserContext, row: CredentialDB) -> None:
        if ctx.is_superadmin:
            return
        if ctx.department_id is None or row.department_id != ctx.department_id:
            raise ForbiddenError(f"You do not have access to credential {row.id}")

    async def list(
        self,
        ctx: UserContext,
        filters: Optional[Any] = None,
        sort: Optional[Any] = None,
    ) -> List[MaskedCredential]:
        """Masked credentials visible to the caller."""
        filters = parse_input(CredentialFilter, filters)
        sort = parse_input(CredentialSort, sort) if sort is not None else None

        with backend_errors("list credentials"):
            async with self.db.session() as session:
                query = select(CredentialDB).where(CredentialDB.deleted_at.is_(None))

                if not ctx.is_superadmin:
                    if ctx.department_id is None:
                        return []
                    query = query.where(CredentialDB.department_id == ctx.department_id)

                if filters.category:
                    query = query.where(func.lower(CredentialDB.category) == filters.category.strip().lower())
                if filters.department_id is not None:
                    query = query.where(CredentialDB.department_id == filters.department_id)

                term = (filters.search or "").strip()
                if len(term) >= settings.min_search_length:
                    pattern = contains_pattern(term)
                    query = query.where(
                        or_(
                            CredentialDB.name.ilike(pattern, escape="\\"),
                            CredentialDB.url.ilike(pattern, escape="\\"),
                            CredentialDB.username.ilike(pattern, escape="\\"),
                            CredentialDB.notes.ilike(pattern, escape="\\"),
                        )
                    )

                order = [CredentialDB.created_at.asc(), CredentialDB.id.asc()]
                if sort is not None:
                    column = getattr(CredentialDB, sort.field)
                    order.insert(0, column.desc() if sort.direction == "desc" else column.asc())

                result = await session.execute(query.order_by(*order))
                return [_mask(row) for row in result.scalars().all()]

    async def get_by_id(self, ctx: UserContext, credential_id: int) -> MaskedCredential:
        with backend_errors("load credential"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, credential_id)
                self._ensure_visible(ctx, row)
                return _mask(row)

    async def create(self, ctx: UserContext, data: Any) -> MaskedCredential:
        require_superadmin(ctx, "create credentials")
        data = parse_input(CredentialCreate, data)

        with backend_errors("create credential"):
            async with self.db.session() as session:
                department_id = await resolve_department(session, data.department)
                now = get_local_now()
                row = CredentialDB(
                    name=data.name,
                    category=data.category,
                    url=data.url,
                    username=data.username,
                    password_encrypted=self.encryption.encrypt(data.password) if data.password else None,
                    notes=data.notes,
                    department_id=department_id,
                    created_by=ctx.user_id,
                    updated_by=ctx.user_id,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()
                await record_audit(
                    session, ctx, "created", ENTITY, row.id,
                    snapshot=row_snapshot(row, exclude=("password_encrypted",)),
                )
                view = _mask(row)

        logger.info(f"Created credential {view.id}: {view.name}")
        return view

    async def update(self, ctx: UserContext, credential_id: int, data: Any) -> MaskedCredential:
        """Merge provided fields. An empty password clears the stored secret."""
        require_superadmin(ctx, "update credentials")
        data = parse_input(CredentialUpdate, data)
        provided = data.model_fields_set

        with backend_errors("update credential"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, credential_id)
                changed = []

                for field in ("name", "category", "url", "username", "notes"):
                    if field in provided and getattr(row, field) != getattr(data, field):
                        await record_audit(
                            session, ctx, "updated", ENTITY, row.id,
                            field_changed=field, old_value=getattr(row, field), new_value=getattr(data, field),
                        )
                        setattr(row, field, getattr(data, field))
                        changed.append(field)

                if "department" in provided:
                    department_id = await resolve_department(session, data.department)
                    if department_id != row.department_id:
                        await record_audit(
                            session, ctx, "updated", ENTITY, row.id,
                            field_changed="department_id", old_value=row.department_id, new_value=department_id,
                        )
                        row.department_id = department_id
                        changed.append("department_id")

                if "password" in provided:
                    row.password_encrypted = self.encryption.encrypt(data.password) if data.password else None
                    # Secret values never reach the audit trail
                    await record_audit(session, ctx, "secret_changed", ENTITY, row.id, field_changed="password")
                    changed.append("password")

                row.updated_at = max(get_local_now(), row.created_at)
                row.updated_by = ctx.user_id
                view = _mask(row)

        logger.info(f"Updated credential {credential_id}: {', '.join(changed) or 'no changes'}")
        return view

    async def soft_delete(self, ctx: UserContext, credential_id: int) -> None:
        require_superadmin(ctx, "delete credentials")
        with backend_errors("delete credential"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, credential_id)
                row.deleted_at = get_local_now()
                await record_audit(
                    session, ctx, "deleted", ENTITY, row.id,
                    snapshot=row_snapshot(row, exclude=("password_encrypted",)),
                )
        logger.info(f"Soft-deleted credential {credential_id}")

    async def reveal_secret(self, ctx: UserContext, credential_id: int) -> Optional[str]:
        """Decrypted password of a credential, or None when none is stored."""
        require_superadmin(ctx, "reveal credential secrets")
        with backend_errors("reveal credential secret"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, credential_id)
                row.last_used_at = get_local_now()
                row.last_used_by = ctx.user_id
                await record_audit(session, ctx, "secret_revealed", ENTITY, row.id, field_changed="password")

                # Undecryptable secret rolls back the reveal and its audit entry
                try:
                    secret = self.encryption.decrypt(row.password_encrypted) if row.password_encrypted else None
                except InvalidToken as e:
                    raise BackendError(f"credential {credential_id} secret cannot be decrypted") from e

        logger.info(f"Credential {credential_id} secret revealed to user {ctx.user_id}")
        return secret
