import asyncio

import pytest

from app.highfives.client import HighFiveClient, HighFiveState
from app.highfives.errors import AlreadyInSession, SessionNotFound
from app.highfives.models import AttemptStatus


async def test_two_clients_high_five(hf, people, clock, store, wait_for):
    async with HighFiveClient(hf, "alice") as alice, HighFiveClient(hf, "bob") as bob:
        await alice.connect("bob")
        await bob.connect("alice")
        assert alice.session.id == bob.session.id == "alice_bob"

        await alice.set_ready(True)
        assert alice.notice == "You're ready! Waiting for partner..."
        await wait_for(lambda: bob.partner_ready)
        assert bob.notice == "Your partner is ready! Get ready too!"

        await bob.set_ready(True)
        await wait_for(lambda: alice.notice == "Both players ready! Tap to high five!")
        await wait_for(lambda: bob.notice == "Both players ready! Tap to high five!")

        clock.set(1000)
        view = await alice.tap()
        assert view.state is HighFiveState.WAITING

        await wait_for(lambda: bob.incoming is not None)
        assert bob.high_five.state is HighFiveState.INCOMING

        clock.set(1250)
        view = await bob.tap()
        assert view.state is HighFiveState.SUCCESS
        assert view.quality == 0.8

        await wait_for(lambda: alice.high_five.state is HighFiveState.SUCCESS)
        assert alice.high_five.quality == 0.8
        assert store.subscription_count == 4

    assert store.subscription_count == 0
    session = await hf.registry.get("alice_bob")
    assert not session.ready_a and not session.ready_b


async def test_unanswered_high_five_shows_expiry(hf, people, wait_for):
    async with HighFiveClient(hf, "alice") as alice, HighFiveClient(hf, "bob") as bob:
        await alice.connect("bob")
        await bob.connect("alice")
        await alice.set_ready(True)
        await bob.set_ready(True)

        await alice.tap()
        await wait_for(lambda: bob.incoming is not None)
        attempt_id = bob.incoming
        await hf.engine.expire(attempt_id)

        await wait_for(lambda: alice.high_five.state is HighFiveState.ERROR)
        assert alice.high_five.error == {"code": "NO_RESPONSE", "message": "High five expired!"}
        await wait_for(lambda: bob.incoming is None)
        assert bob.high_five.state is HighFiveState.ERROR


async def test_tap_before_ready_reports_error(hf, people):
    async with HighFiveClient(hf, "alice") as alice:
        await alice.connect("bob")
        view = await alice.tap()
        assert view.state is HighFiveState.ERROR
        assert view.error["code"] == "NOT_READY"
        assert view.error["message"] == "You need to be ready first!"


async def test_actions_need_a_session(hf, people):
    client = HighFiveClient(hf, "alice")
    with pytest.raises(SessionNotFound):
        await client.tap()
    with pytest.raises(SessionNotFound):
        await client.set_ready(True)
    # leaving without a session is a no-op
    await client.leave()


async def test_leave_keeps_partner_slot_and_stops_listening(hf, people, store, wait_for):
    alice = HighFiveClient(hf, "alice")
    bob = HighFiveClient(hf, "bob")
    await alice.connect("bob")
    await bob.connect("alice")
    await alice.set_ready(True)
    await bob.set_ready(True)
    await wait_for(lambda: alice.partner_ready)

    await alice.leave()
    assert alice.session is None
    assert store.subscription_count == 2

    session = await hf.registry.get("alice_bob")
    assert (session.ready_a, session.ready_b) == (False, True)
    await wait_for(lambda: bob.notice == "Your partner is no longer ready")

    await bob.leave()
    assert store.subscription_count == 0


async def test_old_attempts_are_not_replayed(hf, people, clock, wait_for):
    session = await hf.connect("alice", "bob")
    await hf.set_ready("alice", session.id, True)
    await hf.set_ready("bob", session.id, True)
    old = await hf.initiate("alice", "bob")
    await hf.respond(old.id, "bob")
    await hf.evaluate(old.id)

    async with HighFiveClient(hf, "alice") as alice:
        events = []
        alice.add_listener(lambda event, payload: events.append(event))
        await alice.connect("bob")
        await wait_for(lambda: "session" in events)
        await asyncio.sleep(0.05)
        assert alice.high_five.state is HighFiveState.IDLE
        assert "high_five" not in events


async def test_other_sessions_are_ignored(hf, people, wait_for):
    await hf.connect("carol", "dave")
    async with HighFiveClient(hf, "alice") as alice:
        await alice.connect("bob")
        await hf.set_ready("carol", "carol_dave", True)
        await hf.set_ready("dave", "carol_dave", True)
        other = await hf.initiate("carol", "dave")
        assert other.status is AttemptStatus.PENDING
        await asyncio.sleep(0.05)
        assert alice.incoming is None
        assert alice.high_five.state is HighFiveState.IDLE


async def test_connect_conflict_propagates(hf, people):
    await hf.connect("alice", "bob")
    async with HighFiveClient(hf, "carol") as carol:
        with pytest.raises(AlreadyInSession):
            await carol.connect("alice")
        assert carol.session is None
