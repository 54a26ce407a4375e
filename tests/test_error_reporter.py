import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from helpers.error_messages import format_user_error
from helpers.error_reporter import ErrorReporter
from tests.factories import FakeGuild, FakeInteraction, make_member


def raised(error: Exception) -> Exception:
    try:
        raise error
    except Exception as e:
        return e


@pytest.mark.asyncio
async def test_report_apologizes_once() -> None:
    reporter = ErrorReporter()
    guild = FakeGuild()
    interaction = FakeInteraction(make_member(guild, "alice"), guild)

    await reporter.report(raised(RuntimeError("boom")), interaction=interaction, context="test")

    assert reporter.reported == 1
    assert interaction.messages == [format_user_error("UNKNOWN")]

    # Already answered: no second apology
    await reporter.report(raised(RuntimeError("again")), interaction=interaction)
    assert reporter.reported == 2
    assert len(interaction.messages) == 1


@pytest.mark.asyncio
async def test_report_without_interaction_or_webhook() -> None:
    reporter = ErrorReporter(webhook_url="")
    await reporter.report(raised(ValueError("quiet")))
    assert reporter.reported == 1
    assert reporter._session is None


@pytest.mark.asyncio
async def test_report_posts_to_webhook() -> None:
    received: list[dict] = []

    async def hook(request: web.Request) -> web.Response:
        received.append(await request.json())
        return web.Response(status=204)

    app = web.Application()
    app.router.add_post("/hook", hook)
    async with TestServer(app) as server:
        reporter = ErrorReporter(webhook_url=str(server.make_url("/hook")))
        try:
            await reporter.report(raised(KeyError("missing")), context="sweep")
        finally:
            await reporter.close()

    assert len(received) == 1
    content = received[0]["content"]
    assert content.startswith("**KeyError** in `sweep`")
    assert "Traceback" in content
    assert len(content) <= 2000


@pytest.mark.asyncio
async def test_unreachable_webhook_is_logged_not_raised() -> None:
    app = web.Application()
    async with TestServer(app) as server:
        url = str(server.make_url("/hook"))
    # Server is closed now; the post fails with a connection error
    reporter = ErrorReporter(webhook_url=url)
    try:
        await reporter.report(raised(RuntimeError("boom")))
    finally:
        await reporter.close()
    assert reporter.reported == 1
