"""
tests/test_challenge_manager.py - Challenge workflow against an in-memory store.
"""

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId
from pydantic import ValidationError

from cagematch.challenge.manager import COMPLETION_MESSAGE
from cagematch.database.models import FightDetailsUpdate
from cagematch.errors import AppError


@pytest.fixture
async def trio(make_fighter):
    """Three fighters: alice, bob, carol."""
    return (
        await make_fighter("alice"),
        await make_fighter("bob"),
        await make_fighter("carol"),
    )


@pytest.fixture
async def pending(challenges, trio):
    alice, bob, _ = trio
    return await challenges.create_challenge(alice.id, bob.id, "Let's fight")


def raw_challenge(database, challenge_id):
    return database.raw("challenges").find_one({"_id": challenge_id})


# ======================================================================
# Create
# ======================================================================


class TestCreate:
    async def test_creates_pending_with_opening_message(self, pending, trio):
        alice, bob, _ = trio
        assert pending.status == "pending"
        assert pending.challenger == alice.id
        assert pending.challenged == bob.id
        assert len(pending.messages) == 1
        assert pending.messages[0].sender == alice.id
        assert pending.messages[0].message == "Let's fight"
        assert pending.messages[0].is_system_message is False

    async def test_back_references_on_both_accounts(self, pending, trio, user_ops):
        alice, bob, _ = trio
        assert (await user_ops.get_user(alice.id)).challenges == [pending.id]
        assert (await user_ops.get_user(bob.id)).challenges == [pending.id]

    async def test_initial_fight_details(self, challenges, trio):
        alice, bob, _ = trio
        when = datetime.now(timezone.utc) + timedelta(days=30)
        details = FightDetailsUpdate(proposed_date=when, weight_class="Lightweight", rules="MMA")
        challenge = await challenges.create_challenge(alice.id, bob.id, "Rules inside", details)
        assert challenge.fight_details.weight_class == "Lightweight"
        assert challenge.fight_details.rules == "MMA"
        assert challenge.fight_details.location is None

    async def test_self_challenge_checked_first(self, challenges):
        ghost = ObjectId()
        with pytest.raises(AppError) as exc:
            await challenges.create_challenge(ghost, ghost, "me vs me")
        assert exc.value.code == "SELF_CHALLENGE"
        assert exc.value.status_code == 400

    async def test_fan_cannot_challenge(self, challenges, make_fan, trio):
        fan = await make_fan("frank")
        with pytest.raises(AppError) as exc:
            await challenges.create_challenge(fan.id, trio[0].id, "hi")
        assert exc.value.code == "NOT_FIGHTER"
        assert exc.value.status_code == 403

    async def test_cannot_challenge_fan(self, challenges, make_fan, trio):
        fan = await make_fan("frank")
        with pytest.raises(AppError) as exc:
            await challenges.create_challenge(trio[0].id, fan.id, "hi")
        assert exc.value.code == "TARGET_NOT_FIGHTER"

    async def test_unknown_target(self, challenges, trio):
        with pytest.raises(AppError) as exc:
            await challenges.create_challenge(trio[0].id, ObjectId(), "hi")
        assert exc.value.code == "FIGHTER_NOT_FOUND"
        assert exc.value.status_code == 404

    async def test_duplicate_active_in_either_direction(self, challenges, pending, trio):
        alice, bob, _ = trio
        for first, second in ((alice, bob), (bob, alice)):
            with pytest.raises(AppError) as exc:
                await challenges.create_challenge(first.id, second.id, "again")
            assert exc.value.code == "CHALLENGE_EXISTS"
            assert exc.value.status_code == 409

    async def test_new_challenge_allowed_after_terminal(self, challenges, pending, trio):
        alice, bob, _ = trio
        await challenges.cancel_challenge(pending.id, alice.id)
        again = await challenges.create_challenge(bob.id, alice.id, "rematch?")
        assert again.status == "pending"

    async def test_store_rejects_racing_duplicate(self, challenges, challenge_ops, pending,
                                                  trio, monkeypatch):
        alice, bob, _ = trio

        async def no_active(*args):
            return None

        # Existence check misses, unique pair index still catches it
        monkeypatch.setattr(challenge_ops, "find_active_between", no_active)
        with pytest.raises(AppError) as exc:
            await challenges.create_challenge(bob.id, alice.id, "race")
        assert exc.value.code == "CHALLENGE_EXISTS"


# ======================================================================
# Responses
# ======================================================================


class TestAccept:
    async def test_accept(self, challenges, pending, trio):
        _, bob, _ = trio
        accepted = await challenges.accept_challenge(pending.id, bob.id, "See you there")
        assert accepted.status == "accepted"
        assert accepted.response_details is not None
        assert accepted.response_details.responded_at is not None
        assert accepted.response_details.response_message == "See you there"
        assert len(accepted.messages) == 2
        last = accepted.messages[-1]
        assert last.is_system_message is True
        assert last.sender == bob.id
        assert last.message == "Challenge accepted! See you there"

    async def test_accept_without_message_is_trimmed(self, challenges, pending, trio):
        accepted = await challenges.accept_challenge(pending.id, trio[1].id)
        assert accepted.messages[-1].message == "Challenge accepted!"

    async def test_challenger_cannot_accept(self, challenges, pending, trio, indexed_database):
        before = raw_challenge(indexed_database, pending.id)
        with pytest.raises(AppError) as exc:
            await challenges.accept_challenge(pending.id, trio[0].id)
        assert exc.value.code == "NOT_AUTHORIZED"
        assert exc.value.status_code == 403
        assert raw_challenge(indexed_database, pending.id) == before

    async def test_accept_twice_fails(self, challenges, pending, trio, indexed_database):
        await challenges.accept_challenge(pending.id, trio[1].id)
        before = raw_challenge(indexed_database, pending.id)
        with pytest.raises(AppError) as exc:
            await challenges.accept_challenge(pending.id, trio[1].id)
        assert exc.value.code == "INVALID_STATUS"
        assert "accepted" in exc.value.message
        assert raw_challenge(indexed_database, pending.id) == before

    async def test_unknown_challenge(self, challenges, trio):
        with pytest.raises(AppError) as exc:
            await challenges.accept_challenge(ObjectId(), trio[1].id)
        assert exc.value.code == "CHALLENGE_NOT_FOUND"
        assert exc.value.status_code == 404


class TestDecline:
    async def test_decline_records_reason(self, challenges, pending, trio):
        declined = await challenges.decline_challenge(pending.id, trio[1].id, "Not ready")
        assert declined.status == "declined"
        assert declined.response_details.response_message == "Not ready"
        assert declined.messages[-1].is_system_message is True
        assert "Not ready" in declined.messages[-1].message

    async def test_no_messages_after_decline(self, challenges, pending, trio, indexed_database):
        await challenges.decline_challenge(pending.id, trio[1].id)
        before = raw_challenge(indexed_database, pending.id)
        with pytest.raises(AppError) as exc:
            await challenges.add_message(pending.id, trio[0].id, "please?")
        assert exc.value.code == "INVALID_STATUS"
        assert exc.value.message.endswith("current status: declined")
        assert raw_challenge(indexed_database, pending.id) == before


class TestCancel:
    async def test_cancel_pending_with_reason(self, challenges, pending, trio):
        cancelled = await challenges.cancel_challenge(pending.id, trio[0].id, "Injured")
        assert cancelled.status == "cancelled"
        assert cancelled.messages[-1].message == "Challenge cancelled. Injured"
        assert cancelled.response_details is None

    async def test_cancel_accepted(self, challenges, pending, trio):
        await challenges.accept_challenge(pending.id, trio[1].id)
        cancelled = await challenges.cancel_challenge(pending.id, trio[0].id)
        assert cancelled.status == "cancelled"
        assert cancelled.messages[-1].message == "Challenge cancelled."

    async def test_only_challenger_cancels(self, challenges, pending, trio):
        with pytest.raises(AppError) as exc:
            await challenges.cancel_challenge(pending.id, trio[1].id)
        assert exc.value.code == "NOT_AUTHORIZED"

    async def test_terminal_pair_key_removed(self, challenges, pending, trio, indexed_database):
        assert "pairKey" in raw_challenge(indexed_database, pending.id)
        await challenges.cancel_challenge(pending.id, trio[0].id)
        assert "pairKey" not in raw_challenge(indexed_database, pending.id)


class TestComplete:
    async def test_complete_accepted(self, challenges, pending, trio):
        await challenges.accept_challenge(pending.id, trio[1].id)
        fight_id = ObjectId()
        completed = await challenges.complete_challenge(pending.id, trio[0].id, fight_id)
        assert completed.status == "completed"
        assert completed.related_fight == fight_id
        assert completed.messages[-1].sender is None
        assert completed.messages[-1].message == COMPLETION_MESSAGE

    async def test_pending_cannot_complete(self, challenges, pending, trio, indexed_database):
        before = raw_challenge(indexed_database, pending.id)
        with pytest.raises(AppError) as exc:
            await challenges.complete_challenge(pending.id, trio[0].id)
        assert exc.value.code == "INVALID_STATUS"
        assert raw_challenge(indexed_database, pending.id) == before

    async def test_outsider_cannot_complete(self, challenges, pending, trio):
        await challenges.accept_challenge(pending.id, trio[1].id)
        with pytest.raises(AppError) as exc:
            await challenges.complete_challenge(pending.id, trio[2].id)
        assert exc.value.code == "NOT_AUTHORIZED"


# ======================================================================
# Negotiation
# ======================================================================


class TestUpdateDetails:
    async def test_merge_keeps_existing_fields(self, challenges, trio):
        alice, bob, _ = trio
        challenge = await challenges.create_challenge(
            alice.id, bob.id, "terms", FightDetailsUpdate(rules="Y")
        )
        updated = await challenges.update_details(
            challenge.id, bob.id, FightDetailsUpdate(location="X")
        )
        assert updated.fight_details.location == "X"
        assert updated.fight_details.rules == "Y"
        assert updated.status == "pending"

    async def test_system_message_names_actor(self, challenges, pending, trio):
        updated = await challenges.update_details(
            pending.id, trio[1].id, FightDetailsUpdate(stakes="Pride")
        )
        last = updated.messages[-1]
        assert last.is_system_message is True
        assert last.sender == trio[1].id
        assert last.message == "bob updated the fight details"

    async def test_outsider_rejected(self, challenges, pending, trio):
        with pytest.raises(AppError) as exc:
            await challenges.update_details(pending.id, trio[2].id, FightDetailsUpdate(rules="Z"))
        assert exc.value.code == "NOT_AUTHORIZED"

    async def test_blocked_after_completion(self, challenges, pending, trio):
        await challenges.accept_challenge(pending.id, trio[1].id)
        await challenges.complete_challenge(pending.id, trio[1].id)
        with pytest.raises(AppError) as exc:
            await challenges.update_details(pending.id, trio[0].id, FightDetailsUpdate(rules="Z"))
        assert exc.value.code == "INVALID_STATUS"

    def test_past_date_rejected(self):
        with pytest.raises(ValidationError):
            FightDetailsUpdate(proposed_date=datetime.now(timezone.utc) - timedelta(minutes=1))

    def test_unknown_weight_class_rejected(self):
        with pytest.raises(ValidationError):
            FightDetailsUpdate(weight_class="Paperweight")

    def test_only_sent_fields_are_changes(self):
        assert FightDetailsUpdate(location="Gym").changes() == {"location": "Gym"}


class TestMessages:
    async def test_either_participant_can_write(self, challenges, pending, trio):
        alice, bob, _ = trio
        await challenges.add_message(pending.id, bob.id, "Name the date")
        updated = await challenges.add_message(pending.id, alice.id, "Saturday")
        assert [m.message for m in updated.messages] == ["Let's fight", "Name the date", "Saturday"]
        assert updated.messages[-1].is_system_message is False
        assert updated.status == "pending"

    async def test_outsider_rejected(self, challenges, pending, trio):
        with pytest.raises(AppError) as exc:
            await challenges.add_message(pending.id, trio[2].id, "hey")
        assert exc.value.code == "NOT_AUTHORIZED"


# ======================================================================
# Concurrency and back-references
# ======================================================================


class TestVersioning:
    async def test_each_save_bumps_version(self, challenges, pending, trio, indexed_database):
        assert raw_challenge(indexed_database, pending.id)["version"] == 0
        updated = await challenges.add_message(pending.id, trio[1].id, "hi")
        assert updated.version == 1
        assert raw_challenge(indexed_database, pending.id)["version"] == 1

    async def test_stale_save_rejected(self, challenge_ops, pending):
        first = await challenge_ops.get_challenge(pending.id)
        second = await challenge_ops.get_challenge(pending.id)
        first.status = "accepted"
        assert await challenge_ops.save_challenge(first) is True
        second.status = "declined"
        assert await challenge_ops.save_challenge(second) is False
        assert (await challenge_ops.get_challenge(pending.id)).status == "accepted"

    async def test_lost_race_reports_conflict(self, challenges, challenge_ops, pending, trio,
                                              monkeypatch):
        alice, bob, _ = trio
        stale = await challenge_ops.get_challenge(pending.id)
        await challenges.accept_challenge(pending.id, bob.id)

        async def load_stale(challenge_id):
            return stale.model_copy(deep=True)

        monkeypatch.setattr(challenge_ops, "get_challenge", load_stale)
        with pytest.raises(AppError) as exc:
            await challenges.decline_challenge(pending.id, bob.id)
        assert exc.value.code == "CONCURRENT_MODIFICATION"
        assert exc.value.status_code == 409

        monkeypatch.undo()
        assert (await challenge_ops.get_challenge(pending.id)).status == "accepted"

    async def test_back_references_not_duplicated(self, challenges, pending, trio, user_ops):
        alice, bob, _ = trio
        await challenges.add_message(pending.id, alice.id, "one")
        await challenges.add_message(pending.id, bob.id, "two")
        await challenges.accept_challenge(pending.id, bob.id)
        assert (await user_ops.get_user(alice.id)).challenges == [pending.id]
        assert (await user_ops.get_user(bob.id)).challenges == [pending.id]


# ======================================================================
# Queries and views
# ======================================================================


class TestQueries:
    @pytest.fixture
    async def web(self, challenges, trio):
        alice, bob, carol = trio
        ab = await challenges.create_challenge(alice.id, bob.id, "a->b")
        ca = await challenges.create_challenge(carol.id, alice.id, "c->a")
        bc = await challenges.create_challenge(bob.id, carol.id, "b->c")
        return ab, ca, bc

    async def test_list_includes_only_own(self, challenges, trio, web):
        alice, _, _ = trio
        ab, ca, bc = web
        found, pagination = await challenges.list_for_user(alice.id)
        assert {c.id for c in found} == {ab.id, ca.id}
        assert pagination["total"] == 2
        for challenge in found:
            assert alice.id in (challenge.challenger, challenge.challenged)

    async def test_list_by_role(self, challenges, trio, web):
        alice, _, _ = trio
        ab, ca, _ = web
        as_challenger, _ = await challenges.list_for_user(alice.id, role="challenger")
        as_challenged, _ = await challenges.list_for_user(alice.id, role="challenged")
        assert [c.id for c in as_challenger] == [ab.id]
        assert [c.id for c in as_challenged] == [ca.id]

    async def test_list_by_status(self, challenges, trio, web):
        alice, bob, _ = trio
        ab, ca, _ = web
        await challenges.accept_challenge(ab.id, bob.id)
        found, _ = await challenges.list_for_user(alice.id, status="accepted")
        assert [c.id for c in found] == [ab.id]

    async def test_list_pagination(self, challenges, trio, web):
        alice, _, _ = trio
        first, pagination = await challenges.list_for_user(alice.id, limit=1, page=1)
        second, _ = await challenges.list_for_user(alice.id, limit=1, page=2)
        assert len(first) == 1 and len(second) == 1
        assert first[0].id != second[0].id
        assert pagination == {
            "page": 1, "limit": 1, "total": 2, "pages": 2, "hasNext": True, "hasPrev": False,
        }

    async def test_pending_for_user(self, challenges, trio, web):
        alice, bob, carol = trio
        ab, ca, bc = web
        assert [c.id for c in await challenges.pending_for_user(bob.id)] == [ab.id]
        await challenges.accept_challenge(ab.id, bob.id)
        assert await challenges.pending_for_user(bob.id) == []
        # Outgoing challenges are not pending on the sender
        assert [c.id for c in await challenges.pending_for_user(carol.id)] == [bc.id]

    async def test_fetch_requires_participant(self, challenges, trio, web):
        ab, _, _ = web
        with pytest.raises(AppError) as exc:
            await challenges.get_challenge_for_user(ab.id, trio[2].id)
        assert exc.value.code == "NOT_AUTHORIZED"
        fetched = await challenges.get_challenge_for_user(ab.id, trio[1].id)
        assert fetched.id == ab.id


class TestViews:
    async def test_view_resolves_people(self, challenges, pending, trio):
        alice, bob, _ = trio
        await challenges.accept_challenge(pending.id, bob.id)
        completed = await challenges.complete_challenge(pending.id, alice.id)
        view = await challenges.build_view(completed)

        assert view["_id"] == str(pending.id)
        assert view["isActive"] is False
        assert view["challenger"]["username"] == "alice"
        assert view["challenged"]["_id"] == str(bob.id)
        assert "email" not in view["challenger"]
        assert "password" not in view["challenger"]
        assert "pairKey" not in view

        assert view["messages"][0]["sender"] == {"_id": str(alice.id), "username": "alice"}
        assert view["messages"][1]["sender"] == {"_id": str(bob.id), "username": "bob"}
        assert view["messages"][-1]["sender"] is None
        assert view["messages"][-1]["isSystemMessage"] is True
