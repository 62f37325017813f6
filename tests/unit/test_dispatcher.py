import asyncio
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import PersistenceError, ValidationError
from app.db.repositories.deliveries import DeliveryRecordRepository
from app.schemas.delivery import Recipient, SendResult
from app.services.sms.dispatcher import INVALID_PHONE_ERROR, BatchDispatcher, render_message


def make_recipients(*phones):
    names = ["Ada", "Bola", "Chidi", "Dayo", "Emeka"]
    return [
        Recipient(id=f"student-{i + 1}", first_name=names[i], last_name="Test", phone_number=phone)
        for i, phone in enumerate(phones)
    ]


@pytest.fixture
def dispatcher(fake_gateway, delivery_repository, no_sleep):
    return BatchDispatcher(fake_gateway, delivery_repository, delay_between_messages=1.0, sleep=no_sleep)


def test_render_message_substitutes_known_placeholders():
    recipient = Recipient(id="s1", first_name="Ada", last_name="Obi", variables={"cgpa": "3.52"})

    assert render_message("Hi {firstName} {lastName}", recipient) == "Hi Ada Obi"
    assert render_message("Dear {{ fullName }}, CGPA: {cgpa}", recipient) == "Dear Ada Obi, CGPA: 3.52"
    assert render_message("Hello {unknown}", recipient) == "Hello {unknown}"


def test_render_message_truncates():
    recipient = Recipient(id="s1", first_name="Ada")
    rendered = render_message("{firstName} " + "x" * 300, recipient, max_length=160)

    assert len(rendered) == 160
    assert rendered.startswith("Ada x")


@pytest.mark.asyncio
async def test_invalid_numbers_are_never_sent(dispatcher, fake_gateway):
    recipients = make_recipients("08031111111", "123", "invalid", "08033333333", "")

    result = await dispatcher.dispatch_batch(recipients, "Hi {firstName}")

    assert result.total == 5
    assert result.sent == 2
    assert result.failed == 3
    assert fake_gateway.send.await_count == 2
    sent_to = [call.args[0] for call in fake_gateway.send.await_args_list]
    assert sent_to == ["2348031111111", "2348033333333"]
    assert [o.error for o in result.per_recipient if not o.success] == [INVALID_PHONE_ERROR] * 3


@pytest.mark.asyncio
async def test_messages_are_personalized_and_truncated(fake_gateway, delivery_repository, no_sleep):
    dispatcher = BatchDispatcher(fake_gateway, delivery_repository, max_length=20, sleep=no_sleep)

    await dispatcher.dispatch_batch(make_recipients("08031111111"), "Hi {firstName}, your results are out")

    fake_gateway.send.assert_awaited_once_with("2348031111111", "Hi Ada, your results")


@pytest.mark.asyncio
async def test_pacing_between_recipients_only(dispatcher, no_sleep):
    await dispatcher.dispatch_batch(make_recipients("08031111111", "08032222222", "08033333333"), "Hi")

    assert no_sleep.await_count == 2
    no_sleep.assert_awaited_with(1.0)


@pytest.mark.asyncio
async def test_progress_reported_after_each_recipient(dispatcher):
    reports = []

    await dispatcher.dispatch_batch(
        make_recipients("08031111111", "invalid"),
        "Hi",
        on_progress=reports.append,
    )

    assert [(p.current, p.total, p.recipient_label) for p in reports] == [
        (1, 2, "Ada Test"),
        (2, 2, "Bola Test"),
    ]


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_stop_batch(dispatcher):
    def explode(progress):
        raise RuntimeError("UI went away")

    result = await dispatcher.dispatch_batch(make_recipients("08031111111", "08032222222"), "Hi", on_progress=explode)

    assert result.sent == 2


@pytest.mark.asyncio
async def test_records_created_for_sent_and_failed(dispatcher, fake_gateway, delivery_repository):
    fake_gateway.send.side_effect = [
        SendResult.ok(gateway_message_id="gw-1"),
        SendResult.fail("Insufficient wallet balance"),
    ]

    result = await dispatcher.dispatch_batch(make_recipients("08031111111", "0803 222 2222"), "Hi {firstName}")

    sent = await delivery_repository.get_record(result.per_recipient[0].record_id)
    failed = await delivery_repository.get_record(result.per_recipient[1].record_id)
    assert (sent.status, sent.phone_number, sent.message, sent.gateway_message_id) == (
        "sent", "2348031111111", "Hi Ada", "gw-1",
    )
    assert (failed.status, failed.phone_number, failed.error_message) == (
        "failed", "2348032222222", "Insufficient wallet balance",
    )


@pytest.mark.asyncio
async def test_invalid_phone_creates_no_record(dispatcher, delivery_repository):
    result = await dispatcher.dispatch_batch(make_recipients("invalid"), "Hi")

    assert result.per_recipient[0].record_id is None
    assert await delivery_repository.count() == 0


@pytest.mark.asyncio
async def test_redispatch_updates_existing_record(dispatcher, fake_gateway, delivery_repository):
    fake_gateway.send.side_effect = [SendResult.fail("Gateway down"), SendResult.ok(gateway_message_id="gw-2")]
    recipients = make_recipients("08031111111")

    first = await dispatcher.dispatch_batch(recipients, "Hi {firstName}")
    second = await dispatcher.dispatch_batch(recipients, "Hi {firstName}")

    assert first.per_recipient[0].record_id == second.per_recipient[0].record_id
    record = await delivery_repository.get_record(second.per_recipient[0].record_id)
    assert record.status == "sent"
    assert record.attempts == 2
    assert await delivery_repository.count() == 1


@pytest.mark.asyncio
async def test_gateway_exception_is_isolated(dispatcher, fake_gateway):
    fake_gateway.send.side_effect = [RuntimeError("socket closed"), SendResult.ok(gateway_message_id="gw-2")]

    result = await dispatcher.dispatch_batch(make_recipients("08031111111", "08032222222"), "Hi")

    assert (result.sent, result.failed) == (1, 1)
    assert result.per_recipient[0].error == "socket closed"
    assert result.per_recipient[1].success


@pytest.mark.asyncio
async def test_empty_batch_is_rejected(dispatcher, fake_gateway):
    with pytest.raises(ValidationError):
        await dispatcher.dispatch_batch([], "Hi")
    with pytest.raises(ValidationError):
        await dispatcher.dispatch_batch(make_recipients("08031111111"), "   ")
    fake_gateway.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_persistence_failure_does_not_change_send_outcome(fake_gateway, no_sleep):
    repository = AsyncMock(spec=DeliveryRecordRepository)
    repository.find_latest.return_value = None
    repository.create_record.side_effect = PersistenceError(message="database is locked")
    dispatcher = BatchDispatcher(fake_gateway, repository, sleep=no_sleep)

    result = await dispatcher.dispatch_batch(make_recipients("08031111111", "08032222222"), "Hi")

    assert (result.sent, result.failed) == (2, 0)
    assert result.persistence_errors == [
        "student-1: database is locked",
        "student-2: database is locked",
    ]
    assert all(o.record_id is None for o in result.per_recipient)


@pytest.mark.asyncio
async def test_cancellation_stops_before_next_recipient(fake_gateway, delivery_repository, no_sleep):
    cancel = asyncio.Event()
    dispatcher = BatchDispatcher(fake_gateway, delivery_repository, sleep=no_sleep)

    def stop_after_first(progress):
        if progress.current == 1:
            cancel.set()

    result = await dispatcher.dispatch_batch(
        make_recipients("08031111111", "08032222222", "08033333333"),
        "Hi",
        on_progress=stop_after_first,
        cancel_event=cancel,
    )

    assert result.cancelled
    assert result.total == 3
    assert len(result.per_recipient) == 1
    assert fake_gateway.send.await_count == 1


@pytest.mark.asyncio
async def test_broadcast_uses_one_gateway_call(dispatcher, fake_gateway, delivery_repository):
    recipients = make_recipients("08031111111", "invalid", "+2348031111111", "08033333333")

    result = await dispatcher.dispatch_broadcast(recipients, "School resumes on Monday")

    fake_gateway.send_batch.assert_awaited_once_with(
        ["2348031111111", "2348033333333"], "School resumes on Monday"
    )
    fake_gateway.send.assert_not_awaited()
    assert (result.total, result.sent, result.failed) == (4, 3, 1)
    assert await delivery_repository.count() == 0


@pytest.mark.asyncio
async def test_broadcast_gateway_failure_fails_every_deliverable(dispatcher, fake_gateway):
    fake_gateway.send_batch.return_value = SendResult.fail("HTTP 500")

    result = await dispatcher.dispatch_broadcast(make_recipients("08031111111", "08032222222"), "Hello")

    assert (result.sent, result.failed) == (0, 2)
    assert {o.error for o in result.per_recipient} == {"HTTP 500"}




@pytest.mark.asyncio
async def test_unexpected_store_error_keeps_accepted_send(fake_gateway, no_sleep):
    repository = AsyncMock(spec=DeliveryRecordRepository)
    repository.find_latest.side_effect = RuntimeError("pool exhausted")
    dispatcher = BatchDispatcher(fake_gateway, repository, sleep=no_sleep)

    result = await dispatcher.dispatch_batch(make_recipients("08031111111"), "Hi")

    assert (result.sent, result.failed) == (1, 0)
    assert result.per_recipient[0].success
    assert result.per_recipient[0].gateway_message_id == "gw-1"
    assert result.persistence_errors == ["student-1: pool exhausted"]
