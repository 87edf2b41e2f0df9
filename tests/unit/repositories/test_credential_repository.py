"""
Unit tests for CredentialRepository.

Secrets must be encrypted at rest, masked in every view, and only
revealed to superadmins.
"""

import pytest
from cryptography.fernet import Fernet
from sqlalchemy import select

from opsdesk.database.exceptions import ValidationError, NotFoundError, ForbiddenError, BackendError
from opsdesk.database.models import CredentialDB
from opsdesk.utils.encryption import CredentialEncryption


@pytest.fixture
def vault(credential_repo):
    """Credential repository with a real Fernet key."""
    credential_repo.encryption = CredentialEncryption(Fernet.generate_key())
    return credential_repo


async def _stored_secret(db, credential_id):
    async with db.session() as session:
        result = await session.execute(
            select(CredentialDB.password_encrypted).where(CredentialDB.id == credential_id)
        )
        return result.scalar_one()


@pytest.mark.asyncio
async def test_create_encrypts_and_masks(vault, db, org):
    credential = await vault.create(org.admin, {
        "name": "AWS root",
        "category": "cloud",
        "url": "https://console.aws.amazon.com",
        "username": "root@example.com",
        "password": "hunter2",
        "department": "engineering",
    })

    assert credential.has_password is True
    assert credential.department_id == org.ids.eng_dept
    assert "password" not in credential.model_dump()

    stored = await _stored_secret(db, credential.id)
    assert stored != "hunter2"
    assert CredentialEncryption.is_encrypted(stored)


@pytest.mark.asyncio
async def test_reveal_secret(vault, org):
    credential = await vault.create(org.admin, {"name": "Stripe", "password": "sk_live_123"})

    assert await vault.reveal_secret(org.admin, credential.id) == "sk_live_123"

    masked = await vault.get_by_id(org.admin, credential.id)
    assert masked.last_used_by == org.ids.ada
    assert masked.last_used_at is not None


@pytest.mark.asyncio
async def test_reveal_without_password(vault, org):
    credential = await vault.create(org.admin, {"name": "Wiki", "username": "team"})

    assert credential.has_password is False
    assert await vault.reveal_secret(org.admin, credential.id) is None


@pytest.mark.asyncio
async def test_reveal_is_superadmin_only(vault, org):
    credential = await vault.create(org.admin, {
        "name": "Stripe", "password": "sk_live_123", "department": org.ids.eng_dept,
    })

    with pytest.raises(ForbiddenError):
        await vault.reveal_secret(org.alice, credential.id)


@pytest.mark.asyncio
async def test_writes_are_superadmin_only(vault, org):
    with pytest.raises(ForbiddenError):
        await vault.create(org.manager, {"name": "Sneaky"})

    credential = await vault.create(org.admin, {"name": "Shared"})
    with pytest.raises(ForbiddenError):
        await vault.update(org.manager, credential.id, {"name": "Renamed"})
    with pytest.raises(ForbiddenError):
        await vault.soft_delete(org.manager, credential.id)


@pytest.mark.asyncio
async def test_department_scoping(vault, org):
    eng = await vault.create(org.admin, {"name": "GitHub", "department": "Engineering"})
    await vault.create(org.admin, {"name": "Payroll", "department": "hr"})
    await vault.create(org.admin, {"name": "Unscoped"})

    assert [c.id for c in await vault.list(org.alice)] == [eng.id]
    assert len(await vault.list(org.admin)) == 3
    # No department, nothing visible
    assert await vault.list(org.omar) == []

    payroll = (await vault.list(org.hana))[0]
    with pytest.raises(ForbiddenError):
        await vault.get_by_id(org.alice, payroll.id)


@pytest.mark.asyncio
async def test_unknown_department(vault, org):
    with pytest.raises(ValidationError) as exc_info:
        await vault.create(org.admin, {"name": "GitHub", "department": "marketing"})

    assert exc_info.value.field == "department"


@pytest.mark.asyncio
async def test_update_changes_and_clears_password(vault, db, org):
    credential = await vault.create(org.admin, {"name": "Stripe", "password": "old"})

    updated = await vault.update(org.admin, credential.id, {"password": "new", "notes": "Rotated"})
    assert updated.notes == "Rotated"
    assert await vault.reveal_secret(org.admin, credential.id) == "new"

    cleared = await vault.update(org.admin, credential.id, {"password": ""})
    assert cleared.has_password is False
    assert await _stored_secret(db, credential.id) is None


@pytest.mark.asyncio
async def test_secret_never_reaches_audit(vault, audit_repo, org):
    credential = await vault.create(org.admin, {"name": "Stripe", "password": "sk_live_123"})
    await vault.update(org.admin, credential.id, {"password": "sk_live_456"})
    await vault.reveal_secret(org.admin, credential.id)

    history = await audit_repo.get_entity_history(org.admin, "credential", credential.id)

    assert {e.action for e in history} == {"created", "secret_changed", "secret_revealed"}
    for entry in history:
        assert "sk_live" not in str(entry.model_dump())


@pytest.mark.asyncio
async def test_search_and_category(vault, org):
    aws = await vault.create(org.admin, {"name": "AWS", "category": "Cloud", "url": "https://aws.amazon.com"})
    await vault.create(org.admin, {"name": "Slack", "category": "chat"})

    assert [c.id for c in await vault.list(org.admin, {"search": "amazon"})] == [aws.id]
    assert [c.id for c in await vault.list(org.admin, {"category": "cloud"})] == [aws.id]


@pytest.mark.asyncio
async def test_soft_delete(vault, org):
    credential = await vault.create(org.admin, {"name": "Old"})

    await vault.soft_delete(org.admin, credential.id)

    with pytest.raises(NotFoundError):
        await vault.get_by_id(org.admin, credential.id)
    with pytest.raises(NotFoundError):
        await vault.reveal_secret(org.admin, credential.id)


@pytest.mark.asyncio
async def test_plaintext_fallback_without_key(credential_repo, db, org):
    credential_repo.encryption = CredentialEncryption(None)
    credential = await credential_repo.create(org.admin, {"name": "Legacy", "password": "plain"})

    assert await _stored_secret(db, credential.id) == "plain"
    assert await credential_repo.reveal_secret(org.admin, credential.id) == "plain"


@pytest.mark.asyncio
async def test_search_wildcards_match_literally(vault, org):
    await vault.create(org.admin, {"name": "AWS"})
    shared = await vault.create(org.admin, {"name": "Shared", "notes": "100% team owned"})

    assert await vault.list(org.admin, {"search": "%%"}) == []
    assert [c.id for c in await vault.list(org.admin, {"search": "0%"})] == [shared.id]


@pytest.mark.asyncio
async def test_reveal_with_rotated_key_rolls_back(vault, audit_repo, org):
    credential = await vault.create(org.admin, {"name": "Stripe", "password": "sk_live_123"})
    vault.encryption = CredentialEncryption(Fernet.generate_key())

    with pytest.raises(BackendError):
        await vault.reveal_secret(org.admin, credential.id)

    masked = await vault.get_by_id(org.admin, credential.id)
    assert masked.last_used_by is None

    history = await audit_repo.get_entity_history(org.admin, "credential", credential.id)
    assert "secret_revealed" not in {e.action for e in history}
