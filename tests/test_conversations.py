"""
Conversation tests: onboarding, requests, HR relay and profile updates,
driven update by update through the dispatcher.
"""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.db.models.driver import Driver, DriverStatus
from app.db.models.driver_request import AdvancePaymentRequest, VacationRequest
from app.domain.services.telegram.base_transport import InlineButton
from app.state_machine.handlers import (
    ACTIVE_DRIVER_KEYBOARD,
    BASIC_DRIVER_KEYBOARD,
    DATE_FORMAT_TEXT,
    NOT_REGISTERED_TEXT,
    PROFILE_KEYBOARD,
    SESSION_EXPIRED_TEXT,
    InboundPhoto,
)
from app.state_machine.manager import Session, SessionStore
from app.state_machine.onboarding_handler import (
    CDL_EXPIRED_TEXT,
    COLLECTED_TEXT,
    COMPLETED_TEXT,
    DOT_EXPIRED_TEXT,
    INVALID_NAME_TEXT,
    INVALID_PHONE_TEXT,
    OnboardingHandler,
    STEP_PROMPTS,
    UPLOAD_ERROR_TEXT,
    WELCOME_TEXT,
)
from app.state_machine.payloads import AdvanceRequestData, OnboardingData, VacationRequestData
from app.state_machine.profile_handler import PAST_DATE_TEXT
from app.state_machine.relay_handler import (
    CHANNEL_UNAVAILABLE_TEXT,
    DRIVER_NOT_FOUND_TEXT,
    HR_SEND_ERROR_TEXT,
)
from app.state_machine.request_handler import (
    ADVANCE_START_TEXT,
    END_BEFORE_START_TEXT,
    END_DATE_PROMPT_TEXT,
    NOT_ELIGIBLE_TEXT,
    REASON_PROMPT_TEXT,
    START_DATE_PAST_TEXT,
    VACATION_START_TEXT,
    RequestHandler,
)
from app.state_machine.states import AdvanceRequestStep, OnboardingStep, SessionKind, VacationRequestStep
from tests.conftest import FAKE_PHOTO_BYTES, HR_GROUP_ID, HR_USER_ID, SUPPORT_GROUP_ID

DRIVER_TG = 555001


async def _session(db_session, telegram_id, kind):
    return await SessionStore(db_session).get(telegram_id, kind)


async def _driver_by_telegram_id(db_session, telegram_id) -> Driver:
    result = await db_session.execute(select(Driver).where(Driver.telegram_id == telegram_id))
    return result.scalar_one()


async def _onboard(bot, user_id=DRIVER_TG):
    """Walk through all seven steps; returns the reply to each update"""
    return [
        await bot.text(user_id, "/start"),
        await bot.text(user_id, "John Smith"),
        await bot.text(user_id, "+1 555 123 4567"),
        await bot.photo(user_id, "selfie"),
        await bot.photo(user_id, "cdl-front"),
        await bot.text(user_id, "2099-12-31"),
        await bot.photo(user_id, "dot-card"),
        await bot.text(user_id, "2099-06-30"),
    ]


class TestOnboarding:

    @pytest.mark.unit
    async def test_start_opens_the_first_step(self, bot, db_session, fake_transport):
        response = await bot.text(DRIVER_TG, "/start")

        assert response.text == WELCOME_TEXT
        assert fake_transport.texts_to(DRIVER_TG) == [WELCOME_TEXT]
        session = await _session(db_session, DRIVER_TG, SessionKind.ONBOARDING)
        assert session.step == OnboardingStep.FULL_NAME
        assert session.data.driver_id is None

    @pytest.mark.unit
    async def test_full_onboarding_creates_a_pending_driver(self, bot, db_session, fake_transport):
        replies = await _onboard(bot)

        assert replies[1].text == STEP_PROMPTS[OnboardingStep.PHONE_NUMBER]
        assert replies[2].text == STEP_PROMPTS[OnboardingStep.DRIVER_PHOTO]
        assert replies[3].text == (
            "✅ Driver photo uploaded successfully!\n\n" + STEP_PROMPTS[OnboardingStep.CDL_PHOTO]
        )
        assert replies[4].text.endswith(STEP_PROMPTS[OnboardingStep.CDL_EXPIRY])
        assert replies[5].text == STEP_PROMPTS[OnboardingStep.DOT_MEDICAL_PHOTO]
        assert replies[6].text.endswith(STEP_PROMPTS[OnboardingStep.DOT_MEDICAL_EXPIRY])
        assert replies[7].text == COMPLETED_TEXT
        assert fake_transport.texts_to(DRIVER_TG)[-2:] == [COLLECTED_TEXT, COMPLETED_TEXT]

        driver = await _driver_by_telegram_id(db_session, DRIVER_TG)
        assert driver.full_name == "John Smith"
        assert driver.phone_number == "+1 555 123 4567"
        assert driver.cdl_expiry_date == date(2099, 12, 31)
        assert driver.dot_medical_expiry_date == date(2099, 6, 30)
        assert driver.status == DriverStatus.PENDING
        assert driver.onboarding_completed is True
        assert driver.driver_photo_url.startswith("http://test/uploads/drivers/")
        assert driver.driver_photo_url.endswith("-applicant/photo.jpg")
        assert driver.cdl_photo_url.endswith("-applicant/cdl.jpg")
        assert driver.dot_medical_photo_url.endswith("-applicant/dot_medical.jpg")
        assert fake_transport.downloads == ["selfie", "cdl-front", "dot-card"]

        [notice] = fake_transport.texts_to(HR_GROUP_ID)
        assert notice.startswith("🚛 New Driver Onboarding Request")
        assert f"/approve {driver.id}" in notice
        assert "John Smith" in notice

        assert await _session(db_session, DRIVER_TG, SessionKind.ONBOARDING) is None

    @pytest.mark.unit
    async def test_stored_photo_holds_the_downloaded_bytes(self, bot, db_session, document_storage):
        await _onboard(bot)

        driver = await _driver_by_telegram_id(db_session, DRIVER_TG)
        content, content_type = await document_storage.read(driver.driver_photo_url)
        assert content == FAKE_PHOTO_BYTES
        assert content_type == "image/jpeg"

    @pytest.mark.unit
    async def test_after_completion_texts_fall_through(self, bot, fake_transport):
        await _onboard(bot)

        response = await bot.text(DRIVER_TG, "Jane Doe")

        assert response.text == "Please use /start to begin onboarding or /help for available commands."

    @pytest.mark.unit
    async def test_incomplete_known_driver_is_updated_in_place(self, bot, db_session, driver_factory):
        driver = await driver_factory(
            full_name=None, phone_number=None, status=DriverStatus.PENDING, onboarding_completed=False
        )
        driver_id = driver.id

        await _onboard(bot)

        result = await db_session.execute(select(Driver))
        [stored] = result.scalars().all()
        assert stored.id == driver_id
        assert stored.onboarding_completed is True
        assert stored.driver_photo_url.endswith(f"-{driver_id}/photo.jpg")

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "status, keyboard",
        [(DriverStatus.ACTIVE, ACTIVE_DRIVER_KEYBOARD), (DriverStatus.PENDING, BASIC_DRIVER_KEYBOARD)],
    )
    async def test_start_for_a_registered_driver_shows_the_menu(
        self, bot, db_session, driver_factory, status, keyboard
    ):
        await driver_factory(status=status)

        response = await bot.text(DRIVER_TG, "/start")

        assert response.text.startswith("🚛 Welcome back, John Smith!")
        assert f"Status: {status.value.upper()}" in response.text
        assert response.keyboard == keyboard
        assert await _session(db_session, DRIVER_TG, SessionKind.ONBOARDING) is None

    @pytest.mark.unit
    @pytest.mark.parametrize("name", ["J", "/", "x" * 101])
    async def test_invalid_name_keeps_the_step(self, bot, db_session, name):
        await bot.text(DRIVER_TG, "/start")

        response = await bot.text(DRIVER_TG, name)

        assert response.text == INVALID_NAME_TEXT
        session = await _session(db_session, DRIVER_TG, SessionKind.ONBOARDING)
        assert session.step == OnboardingStep.FULL_NAME

    @pytest.mark.unit
    async def test_invalid_phone(self, bot, db_session):
        await bot.text(DRIVER_TG, "/start")
        await bot.text(DRIVER_TG, "John Smith")

        response = await bot.text(DRIVER_TG, "call me maybe")

        assert response.text == INVALID_PHONE_TEXT
        session = await _session(db_session, DRIVER_TG, SessionKind.ONBOARDING)
        assert session.step == OnboardingStep.PHONE_NUMBER
        assert session.data.full_name == "John Smith"

    @pytest.mark.unit
    async def test_text_at_a_photo_step_repeats_the_prompt(self, bot):
        await bot.text(DRIVER_TG, "/start")
        await bot.text(DRIVER_TG, "John Smith")
        await bot.text(DRIVER_TG, "5551234567")

        response = await bot.text(DRIVER_TG, "here is my photo")

        assert response.text == STEP_PROMPTS[OnboardingStep.DRIVER_PHOTO]

    @pytest.mark.unit
    async def test_photo_at_a_text_step_is_refused(self, bot, db_session, fake_transport):
        await bot.text(DRIVER_TG, "/start")

        response = await bot.photo(DRIVER_TG)

        assert response.text == "Please send a photo when requested during the onboarding process."
        assert fake_transport.downloads == []
        session = await _session(db_session, DRIVER_TG, SessionKind.ONBOARDING)
        assert session.step == OnboardingStep.FULL_NAME

    @pytest.mark.unit
    async def test_failed_download_keeps_the_step(self, bot, db_session, fake_transport):
        await bot.text(DRIVER_TG, "/start")
        await bot.text(DRIVER_TG, "John Smith")
        await bot.text(DRIVER_TG, "5551234567")
        fake_transport.fail_downloads = True

        response = await bot.photo(DRIVER_TG)

        assert response.text == UPLOAD_ERROR_TEXT
        session = await _session(db_session, DRIVER_TG, SessionKind.ONBOARDING)
        assert session.step == OnboardingStep.DRIVER_PHOTO

    @pytest.mark.unit
    async def test_expired_and_malformed_dates(self, bot):
        await bot.text(DRIVER_TG, "/start")
        await bot.text(DRIVER_TG, "John Smith")
        await bot.text(DRIVER_TG, "5551234567")
        await bot.photo(DRIVER_TG, "selfie")
        await bot.photo(DRIVER_TG, "cdl")

        assert (await bot.text(DRIVER_TG, "12/31/2099")).text == DATE_FORMAT_TEXT
        assert (await bot.text(DRIVER_TG, "2000-01-01")).text == CDL_EXPIRED_TEXT
        await bot.text(DRIVER_TG, "2099-12-31")
        await bot.photo(DRIVER_TG, "dot")
        assert (await bot.text(DRIVER_TG, "2000-01-01")).text == DOT_EXPIRED_TEXT

    @pytest.mark.unit
    async def test_missing_hr_group_still_completes(self, bot, db_session, bot_settings, monkeypatch, fake_transport):
        monkeypatch.setattr(bot_settings, "TELEGRAM_HR_GROUP_ID", "")

        replies = await _onboard(bot)

        assert replies[-1].text == COMPLETED_TEXT
        assert fake_transport.messages_to(HR_GROUP_ID) == []

    @pytest.mark.unit
    async def test_failing_hr_notice_does_not_fail_onboarding(self, bot, fake_transport):
        fake_transport.failing_chats.add(str(HR_GROUP_ID))

        replies = await _onboard(bot)

        assert replies[-1].text == COMPLETED_TEXT

    @pytest.mark.unit
    async def test_analysis_is_enqueued_when_enabled(self, bot, bot_settings, monkeypatch):
        queued = []
        monkeypatch.setattr(bot_settings, "DOCUMENT_ANALYSIS_ENABLED", True)
        monkeypatch.setattr(
            OnboardingHandler, "_enqueue_analysis", lambda self, driver_id: queued.append(driver_id)
        )

        await _onboard(bot)

        assert len(queued) == 1


class TestRequests:

    @pytest.mark.unit
    @pytest.mark.parametrize("status", [DriverStatus.PENDING, DriverStatus.INACTIVE, DriverStatus.SUSPENDED])
    async def test_only_active_drivers_may_request(self, bot, db_session, driver_factory, status):
        await driver_factory(status=status)

        assert (await bot.text(DRIVER_TG, "/request_advance")).text == NOT_ELIGIBLE_TEXT
        assert (await bot.text(DRIVER_TG, "🏖️ Request Vacation")).text == NOT_ELIGIBLE_TEXT
        assert await _session(db_session, DRIVER_TG, SessionKind.ADVANCE_REQUEST) is None

    @pytest.mark.unit
    async def test_unregistered_user_may_not_request(self, bot):
        assert (await bot.text(DRIVER_TG, "/request_vacation")).text == NOT_ELIGIBLE_TEXT

    @pytest.mark.unit
    async def test_advance_request(self, bot, db_session, driver_factory, fake_transport):
        driver = await driver_factory()
        driver_id = driver.id

        assert (await bot.text(DRIVER_TG, "💰 Request Advance Payment")).text == ADVANCE_START_TEXT
        invalid = await bot.text(DRIVER_TG, "lots")
        assert invalid.text.startswith("❌ ")
        assert invalid.text.endswith("Please enter the amount you need:")
        assert (await bot.text(DRIVER_TG, "$1,250.50")).text == REASON_PROMPT_TEXT
        assert (await bot.text(DRIVER_TG, "tires")).text.endswith(REASON_PROMPT_TEXT)
        response = await bot.text(DRIVER_TG, "Truck tire replacement")

        assert response.text.startswith("✅ Your advance payment request has been submitted!")
        assert "Amount: $1250.50" in response.text

        [request] = (await db_session.execute(select(AdvancePaymentRequest))).scalars().all()
        assert request.amount == Decimal("1250.50")
        assert request.reason == "Truck tire replacement"
        assert request.driver_id == driver_id

        [notice] = fake_transport.messages_to(HR_GROUP_ID)
        assert notice["text"].startswith("💰 New Advance Payment Request")
        assert notice["inline_keyboard"] == [[InlineButton("💬 Message John Smith", f"message_{driver_id}")]]
        assert await _session(db_session, DRIVER_TG, SessionKind.ADVANCE_REQUEST) is None

    @pytest.mark.unit
    async def test_vacation_request(self, bot, db_session, driver_factory, fake_transport):
        await driver_factory()

        assert (await bot.text(DRIVER_TG, "/request_vacation")).text == VACATION_START_TEXT
        assert (await bot.text(DRIVER_TG, "next week")).text == DATE_FORMAT_TEXT
        assert (await bot.text(DRIVER_TG, "2000-01-01")).text == START_DATE_PAST_TEXT
        assert (await bot.text(DRIVER_TG, "2099-07-01")).text == END_DATE_PROMPT_TEXT
        assert (await bot.text(DRIVER_TG, "2099-07-01")).text == END_BEFORE_START_TEXT
        assert (await bot.text(DRIVER_TG, "2099-07-14")).text == REASON_PROMPT_TEXT
        response = await bot.text(DRIVER_TG, "Family vacation trip")

        assert "From: 2099-07-01" in response.text
        assert "To: 2099-07-14" in response.text
        [request] = (await db_session.execute(select(VacationRequest))).scalars().all()
        assert (request.start_date, request.end_date) == (date(2099, 7, 1), date(2099, 7, 14))
        assert fake_transport.texts_to(HR_GROUP_ID)[0].startswith("🏖️ New Vacation Request")

    @pytest.mark.unit
    async def test_driver_deactivated_mid_request(self, bot, db_session, driver_factory):
        driver = await driver_factory()
        await bot.text(DRIVER_TG, "/request_advance")
        await bot.text(DRIVER_TG, "300")
        driver.status = DriverStatus.SUSPENDED
        await db_session.commit()

        response = await bot.text(DRIVER_TG, "Fuel for the long haul")

        assert response.text == NOT_ELIGIBLE_TEXT
        assert (await db_session.execute(select(AdvancePaymentRequest))).scalars().all() == []
        assert await _session(db_session, DRIVER_TG, SessionKind.ADVANCE_REQUEST) is None

    @pytest.mark.unit
    async def test_pending_requests_listing(self, bot, driver_factory):
        await driver_factory()
        await bot.text(DRIVER_TG, "/request_advance")
        await bot.text(DRIVER_TG, "500")
        await bot.text(DRIVER_TG, "Truck repair costs")

        response = await bot.text(HR_USER_ID, "/pending_requests")

        assert response.text.startswith("📋 Pending Requests")
        assert "John Smith" in response.text
        assert "$500.00 - Truck repair costs" in response.text

    @pytest.mark.unit
    async def test_no_pending_requests(self, bot):
        assert (await bot.text(HR_USER_ID, "/pending_requests")).text == "📋 No pending requests."


class TestHRRelay:

    @pytest.mark.unit
    async def test_hr_message_and_driver_reply(self, bot, db_session, driver_factory, fake_transport):
        driver = await driver_factory()
        driver_id = driver.id

        opened = await bot.text(HR_USER_ID, f"/message {driver_id}")
        assert opened.text.startswith("💬 Message to John Smith")

        sent = await bot.text(HR_USER_ID, "Please call the office")
        assert sent.text.startswith("✅ Message sent to John Smith!")
        [relayed] = fake_transport.texts_to(DRIVER_TG)
        assert relayed.startswith("📨 Message from HR\n\nPlease call the office")
        assert await _session(db_session, HR_USER_ID, SessionKind.HR_MESSAGE) is None

        reply_session = await _session(db_session, DRIVER_TG, SessionKind.DRIVER_REPLY)
        assert reply_session.data.destination_chat_id == str(HR_GROUP_ID)
        assert reply_session.data.hr_user_id == HR_USER_ID

        answered = await bot.text(DRIVER_TG, "On my way")
        assert answered.text == "✅ Your reply has been sent to HR!"
        [reply] = fake_transport.messages_to(HR_GROUP_ID)
        assert reply["text"] == "💬 Reply from John Smith\n\nOn my way"
        assert reply["inline_keyboard"] == [[InlineButton("Response John Smith", f"reply_driver_{driver_id}")]]
        assert await _session(db_session, DRIVER_TG, SessionKind.DRIVER_REPLY) is None

    @pytest.mark.unit
    async def test_reply_button_reopens_a_message(self, bot, db_session, driver_factory, fake_transport):
        driver = await driver_factory()

        response = await bot.press(HR_USER_ID, f"reply_driver_{driver.id}")

        assert response.text.startswith("💬 Message to John Smith")
        assert fake_transport.callbacks[-1][1] == "💬 Starting chat with John Smith"
        assert await _session(db_session, HR_USER_ID, SessionKind.HR_MESSAGE) is not None

    @pytest.mark.unit
    async def test_unknown_driver(self, bot, db_session):
        response = await bot.text(HR_USER_ID, "/message 42")

        assert response.text == DRIVER_NOT_FOUND_TEXT
        assert await _session(db_session, HR_USER_ID, SessionKind.HR_MESSAGE) is None

    @pytest.mark.unit
    async def test_failed_relay_keeps_the_hr_session(self, bot, db_session, driver_factory, fake_transport):
        driver = await driver_factory()
        await bot.text(HR_USER_ID, f"/message {driver.id}")
        fake_transport.failing_chats.add(str(DRIVER_TG))

        response = await bot.text(HR_USER_ID, "Are you there?")

        assert response.text == HR_SEND_ERROR_TEXT
        assert await _session(db_session, HR_USER_ID, SessionKind.HR_MESSAGE) is not None
        assert await _session(db_session, DRIVER_TG, SessionKind.DRIVER_REPLY) is None

    @pytest.mark.unit
    async def test_hr_working_from_the_group(self, bot, db_session, driver_factory, fake_transport):
        driver = await driver_factory()
        staff_member = 4242

        await bot.text(staff_member, f"/message {driver.id}", chat_id=HR_GROUP_ID)
        await bot.text(staff_member, "Bring your logbook", chat_id=HR_GROUP_ID)

        assert fake_transport.texts_to(DRIVER_TG)[0].startswith("📨 Message from HR")
        assert fake_transport.texts_to(HR_GROUP_ID)[-1].startswith("✅ Message sent to John Smith!")

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "label, chat_id, destination_label",
        [("💬 Message HR", HR_GROUP_ID, "HR"), ("🆘 Contact Support", SUPPORT_GROUP_ID, "Support")],
    )
    async def test_driver_opens_a_message(
        self, bot, driver_factory, fake_transport, label, chat_id, destination_label
    ):
        await driver_factory()

        opened = await bot.text(DRIVER_TG, label)
        assert opened.text.startswith(f"💬 Message to {destination_label}")
        await bot.text(DRIVER_TG, "My truck broke down")

        assert fake_transport.texts_to(chat_id) == ["💬 Reply from John Smith\n\nMy truck broke down"]

    @pytest.mark.unit
    async def test_unconfigured_support_channel(self, bot, driver_factory, bot_settings, monkeypatch):
        await driver_factory()
        monkeypatch.setattr(bot_settings, "TELEGRAM_SUPPORT_GROUP_ID", "")

        assert (await bot.text(DRIVER_TG, "🆘 Contact Support")).text == CHANNEL_UNAVAILABLE_TEXT

    @pytest.mark.unit
    async def test_unregistered_user_cannot_message_hr(self, bot):
        assert (await bot.text(DRIVER_TG, "💬 Message HR")).text == NOT_REGISTERED_TEXT


class TestProfileUpdate:

    @pytest.mark.unit
    async def test_replace_driver_license(self, bot, db_session, driver_factory, fake_transport):
        driver = await driver_factory(cdl_expiry_date=date(2030, 1, 1))
        driver_id = driver.id

        assert (await bot.text(DRIVER_TG, "📝 Update Profile")).keyboard == PROFILE_KEYBOARD
        prompt = await bot.text(DRIVER_TG, "🚗 Driver License")
        assert prompt.text == "Please send a new photo of your Driver License or type /cancel to abort."

        uploaded = await bot.photo(DRIVER_TG, "new-cdl")
        assert uploaded.text.startswith("✅ Your Driver License has been updated!")
        assert await _session(db_session, DRIVER_TG, SessionKind.PROFILE_UPDATE) is None
        assert await _session(db_session, DRIVER_TG, SessionKind.PROFILE_UPDATE_DATE) is not None

        assert (await bot.text(DRIVER_TG, "2000-01-01")).text == PAST_DATE_TEXT
        done = await bot.text(DRIVER_TG, "2099-12-31")
        assert done.text == "✅ Your Driver License expiration date has been updated!"

        stored = await _driver_by_telegram_id(db_session, DRIVER_TG)
        await db_session.refresh(stored)
        assert stored.cdl_expiry_date == date(2099, 12, 31)
        assert stored.cdl_photo_url.endswith(f"-{driver_id}/cdl.jpg")
        assert await _session(db_session, DRIVER_TG, SessionKind.PROFILE_UPDATE_DATE) is None

    @pytest.mark.unit
    async def test_medical_card_targets_the_dot_columns(self, bot, db_session, driver_factory):
        await driver_factory()

        await bot.text(DRIVER_TG, "🏥 Medical Card")
        await bot.photo(DRIVER_TG, "new-card")
        await bot.text(DRIVER_TG, "2099-03-15")

        stored = await _driver_by_telegram_id(db_session, DRIVER_TG)
        await db_session.refresh(stored)
        assert stored.dot_medical_expiry_date == date(2099, 3, 15)
        assert stored.dot_medical_photo_url.endswith("/dot_medical.jpg")

    @pytest.mark.unit
    async def test_text_while_waiting_for_the_photo_is_not_routed(self, bot, driver_factory):
        await driver_factory()
        await bot.text(DRIVER_TG, "🚗 Driver License")

        response = await bot.text(DRIVER_TG, "2099-12-31")

        assert response.text == "Please use /start to begin onboarding or /help for available commands."

    @pytest.mark.unit
    async def test_back_to_menu_abandons_the_update(self, bot, db_session, driver_factory):
        await driver_factory()
        await bot.text(DRIVER_TG, "🚗 Driver License")

        response = await bot.text(DRIVER_TG, "⬅️ Back to Menu")

        assert response.text.startswith("🚛 Welcome back, John Smith!")
        assert await _session(db_session, DRIVER_TG, SessionKind.PROFILE_UPDATE) is None

    @pytest.mark.unit
    async def test_unregistered_user(self, bot):
        assert (await bot.text(DRIVER_TG, "🏥 Medical Card")).text == NOT_REGISTERED_TEXT
        assert (await bot.text(DRIVER_TG, "⬅️ Back to Menu")).text == NOT_REGISTERED_TEXT


def _unsaved_session(kind: SessionKind, step: int, data) -> Session:
    """A session as a handler saw it, whose row has since expired or been removed"""
    now = datetime.utcnow()
    return Session(
        telegram_id=DRIVER_TG,
        kind=kind,
        step=step,
        data=data,
        created_at=now,
        updated_at=now,
        expires_at=now + timedelta(hours=1),
    )


class TestSessionGoneMidStep:

    @pytest.mark.unit
    async def test_onboarding_text_step(self, bot, db_session, fake_transport):
        handler = OnboardingHandler(db_session, fake_transport)
        session = _unsaved_session(SessionKind.ONBOARDING, OnboardingStep.FULL_NAME, OnboardingData())

        response = await handler.handle_text(bot.actor(DRIVER_TG), session, "John Smith")

        assert response.text == SESSION_EXPIRED_TEXT
        assert await _session(db_session, DRIVER_TG, SessionKind.ONBOARDING) is None

    @pytest.mark.unit
    async def test_onboarding_photo_step(self, bot, db_session, fake_transport):
        handler = OnboardingHandler(db_session, fake_transport)
        session = _unsaved_session(
            SessionKind.ONBOARDING,
            OnboardingStep.DRIVER_PHOTO,
            OnboardingData(full_name="John Smith", phone_number="+15551234567"),
        )

        response = await handler.handle_photo(bot.actor(DRIVER_TG), session, InboundPhoto("photo-1"))

        assert response.text == SESSION_EXPIRED_TEXT
        assert await _session(db_session, DRIVER_TG, SessionKind.ONBOARDING) is None

    @pytest.mark.unit
    async def test_advance_amount_step(self, bot, db_session, fake_transport):
        handler = RequestHandler(db_session, fake_transport)
        session = _unsaved_session(SessionKind.ADVANCE_REQUEST, AdvanceRequestStep.AMOUNT, AdvanceRequestData())

        response = await handler.handle_advance_text(bot.actor(DRIVER_TG), session, "500")

        assert response.text == SESSION_EXPIRED_TEXT
        assert await _session(db_session, DRIVER_TG, SessionKind.ADVANCE_REQUEST) is None

    @pytest.mark.unit
    async def test_vacation_date_steps(self, bot, db_session, fake_transport):
        handler = RequestHandler(db_session, fake_transport)
        actor = bot.actor(DRIVER_TG)
        start = _unsaved_session(SessionKind.VACATION_REQUEST, VacationRequestStep.START_DATE, VacationRequestData())
        end = _unsaved_session(
            SessionKind.VACATION_REQUEST,
            VacationRequestStep.END_DATE,
            VacationRequestData(start_date=date(2099, 1, 1)),
        )

        assert (await handler.handle_vacation_text(actor, start, "2099-01-01")).text == SESSION_EXPIRED_TEXT
        assert (await handler.handle_vacation_text(actor, end, "2099-01-10")).text == SESSION_EXPIRED_TEXT
        assert fake_transport.sent == []
