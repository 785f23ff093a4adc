import pytest

from hostel_assistant import Assistant, InboundMessage
from hostel_assistant.config import Settings
from hostel_assistant.services.templates import get_template


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        llm_api_key=None,
        staff_phones=["60111111111"],
        escalation_phone="60127088789",
        rate_limit_per_minute=3,
        sweep_interval_seconds=0.01,
    )


class TestAssistant:
    @pytest.mark.asyncio
    async def test_answers_and_shuts_down(self, settings, notifier, clock, provider_factory):
        assistant = Assistant(notifier, settings=settings, provider=provider_factory(), clock=clock)
        await assistant.start()
        try:
            result = await assistant.handle_message(InboundMessage(phone="60123456789", text="check in time?"))
        finally:
            await assistant.stop()

        assert "2:00 PM" in result.reply
        assert assistant.conversations.size() == 0
        assert assistant.rate_limiter.size() == 0

    @pytest.mark.asyncio
    async def test_without_api_key_llm_is_disabled(self, settings, notifier, clock):
        assistant = Assistant(notifier, settings=settings, clock=clock)

        result = await assistant.handle_message(InboundMessage(phone="60123456789", text="zzz qqq"))

        assert assistant.ai.is_available() is False
        assert result.reply == get_template("unavailable", "en")

    @pytest.mark.asyncio
    async def test_staff_exemptions_come_from_settings(self, settings, notifier, clock):
        assistant = Assistant(notifier, settings=settings, clock=clock)

        for _ in range(5):
            result = await assistant.handle_message(InboundMessage(phone="+60 11-111 1111", text="hi"))
            assert not result.rate_limited

    @pytest.mark.asyncio
    async def test_reload_staff_phones(self, settings, notifier, clock):
        assistant = Assistant(notifier, settings=settings, clock=clock)
        assistant.reload_staff_phones(["60122222222"])

        results = [
            await assistant.handle_message(InboundMessage(phone="60122222222", text="hi")) for _ in range(5)
        ]

        assert not any(r.rate_limited for r in results)
        assert assistant.rate_limiter.exempt_phones == frozenset({"60122222222"})

    @pytest.mark.asyncio
    async def test_escalations_go_to_configured_phone(self, settings, notifier, clock):
        assistant = Assistant(notifier, settings=settings, clock=clock)

        await assistant.handle_message(InboundMessage(phone="60123456789", text="i want to speak to a manager"))

        assert notifier.send_message.call_args.args[0] == "60127088789"
