import pytest
from sqlalchemy import select, func

from app.models import Email
from app.repos import emails as emails_repo
from app.services.email_lifecycle import EmailService, Forbidden, InvalidState, NotFound
from tests.conftest import RecordingMailer, code_from_mail, mk_user

pytestmark = pytest.mark.asyncio


async def _primaries(session_factory, user_id: int) -> list[str]:
    # fresh session so nothing comes from the identity map
    async with session_factory() as s:
        rows = await s.execute(
            select(Email.email).where(Email.user_id == user_id, Email.is_primary.is_(True))
        )
        return list(rows.scalars().all())


async def test_add_verify_promote_walkthrough(db, svc, mailer, session_factory):
    uid = await mk_user(db, "a@x.com", "A")

    await svc.add_email(address="b@x.com", user_id=uid)
    assert len(await svc.get_emails_by_user_id(uid)) == 2
    assert mailer.sent[-1][0] == "a@x.com"

    with pytest.raises(InvalidState) as exc:
        await svc.promote_email(address="b@x.com", user_id=uid)
    assert "validated" in exc.value.message

    await svc.set_verified("b@x.com")
    await svc.promote_email(address="b@x.com", user_id=uid)

    assert await _primaries(session_factory, uid) == ["b@x.com"]
    to, subject, body = mailer.sent[-1]
    assert to == "a@x.com"
    assert subject == "A New Primary Email Has Been Set"
    assert "b@x.com" in body


async def test_promote_after_activation_flow(db, svc, mailer, session_factory):
    uid = await mk_user(db, "a@x.com")
    await svc.add_email(address="b@x.com", user_id=uid)
    await svc.send_activation_code("b@x.com")
    code = code_from_mail(mailer.sent[-1][2])

    assert (await svc.activate_email(address="b@x.com", code=code)).ok
    await svc.promote_email(address="b@x.com", user_id=uid)

    assert await _primaries(session_factory, uid) == ["b@x.com"]


async def test_promote_requires_owner(db, svc, mailer):
    owner = await mk_user(db, "a@x.com")
    intruder = await mk_user(db, "i@x.com")
    await svc.add_email(address="b@x.com", user_id=owner)
    await svc.set_verified("b@x.com")
    sent_before = len(mailer.sent)

    with pytest.raises(Forbidden) as exc:
        await svc.promote_email(address="b@x.com", user_id=intruder)
    assert exc.value.message == "You can only promote email address owned by you."
    assert len(mailer.sent) == sent_before


async def test_promote_unknown_or_already_primary(db, svc):
    uid = await mk_user(db, "a@x.com")
    with pytest.raises(NotFound):
        await svc.promote_email(address="ghost@x.com", user_id=uid)
    with pytest.raises(InvalidState):
        await svc.promote_email(address="a@x.com", user_id=uid)


async def test_promote_keeps_one_primary_per_user(db, svc, session_factory):
    uid = await mk_user(db, "a@x.com")
    for addr in ("b@x.com", "c@x.com"):
        await svc.add_email(address=addr, user_id=uid)
        await svc.set_verified(addr)

    await svc.promote_email(address="b@x.com", user_id=uid)
    await svc.promote_email(address="c@x.com", user_id=uid)

    assert await _primaries(session_factory, uid) == ["c@x.com"]


async def test_promote_mail_failure_is_soft(db, email_config, session_factory):
    uid = await mk_user(db, "a@x.com")
    svc = EmailService(db, mailer=RecordingMailer(succeed=False), config=email_config)
    await svc.add_email(address="b@x.com", user_id=uid)
    await svc.set_verified("b@x.com")

    await svc.promote_email(address="b@x.com", user_id=uid)

    assert await _primaries(session_factory, uid) == ["b@x.com"]


async def test_delete_alternate_email_notifies_primary(db, svc, mailer):
    uid = await mk_user(db, "a@x.com")
    await svc.add_email(address="b@x.com", user_id=uid)

    await svc.delete_email(address="b@x.com", user_id=uid)

    assert await emails_repo.get_by_address(db, "b@x.com") is None
    assert [e.email for e in await svc.get_emails_by_user_id(uid)] == ["a@x.com"]
    to, subject, body = mailer.sent[-1]
    assert to == "a@x.com"
    assert subject == "Alternative Email Delete From Account"
    assert "b@x.com" in body


async def test_delete_primary_always_fails(db, svc):
    uid = await mk_user(db, "a@x.com")
    with pytest.raises(InvalidState) as exc:
        await svc.delete_email(address="a@x.com", user_id=uid)
    assert exc.value.message == "You can't delete the primary email address from an account."

    other = await mk_user(db, "o@x.com")
    with pytest.raises((Forbidden, InvalidState)):
        await svc.delete_email(address="a@x.com", user_id=other)

    assert await emails_repo.get_by_address(db, "a@x.com") is not None


async def test_delete_requires_owner_and_existing(db, svc):
    owner = await mk_user(db, "a@x.com")
    intruder = await mk_user(db, "i@x.com")
    await svc.add_email(address="b@x.com", user_id=owner)

    with pytest.raises(Forbidden):
        await svc.delete_email(address="b@x.com", user_id=intruder)
    with pytest.raises(NotFound):
        await svc.delete_email(address="ghost@x.com", user_id=owner)

    assert await emails_repo.get_by_address(db, "b@x.com") is not None


async def test_deleted_address_can_be_added_again(db, svc):
    uid = await mk_user(db, "a@x.com")
    await svc.add_email(address="b@x.com", user_id=uid)
    await svc.delete_email(address="b@x.com", user_id=uid)

    again = await svc.add_email(address="b@x.com", user_id=uid)
    assert again.is_verified is False
