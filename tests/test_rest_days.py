from datetime import date, timedelta

import pytest

from fitleague.errors import AuthorizationError, ConflictError, NotFoundError, NotMember, ValidationError
from fitleague.models import APPROVED, CAPTAIN_APPROVED, PENDING, REJECTED, League, RestDayCounts
from fitleague.rest_days import compute_status, next_donation_status


def _rest_days(manager, member, n):
    for i in range(n):
        manager.record_manual_entry(member_id=member.member_id, entry_date=date(2024, 3, 1) + timedelta(days=i), kind="rest")


def _approve(manager, donation_id):
    manager.review_rest_day_donation(donation_id, "approve", reviewer_role="captain")
    return manager.review_rest_day_donation(donation_id, "approve", reviewer_role="host")


def test_compute_status_after_donation():
    st = compute_status(5, RestDayCounts(approved_rest=2, donated=1))
    assert (st.used, st.remaining, st.is_at_limit) == (3, 2, False)
    assert st.donations == {"received": 0, "donated": 1}


def test_compute_status_at_limit():
    st = compute_status(2, RestDayCounts(approved_rest=3, pending_rest=1))
    assert (st.used, st.remaining, st.is_at_limit, st.pending) == (3, 0, True, 1)


def test_donation_end_to_end(manager, alice, bob):
    _rest_days(manager, alice, 2)
    d = manager.request_rest_day_donation(league_id="lg", donor_member_id=alice.member_id, receiver_member_id=bob.member_id, days=1)
    assert d.status == PENDING
    # Pending donations do not move the ledger.
    assert manager.get_rest_day_status("lg", alice.member_id).used == 2

    d = _approve(manager, d.donation_id)
    assert d.status == APPROVED
    assert d.captain_approved_at is not None and d.final_approved_at is not None

    donor = manager.get_rest_day_status("lg", alice.member_id)
    assert (donor.total_allowed, donor.auto_used, donor.used, donor.remaining) == (5, 2, 3, 2)
    receiver = manager.get_rest_day_status("lg", bob.member_id)
    assert (receiver.received, receiver.used, receiver.remaining) == (1, -1, 6)


def test_ledger_conservation(manager, alice, bob, carol):
    pairs = [(alice, bob, 2), (bob, carol, 1), (carol, alice, 3), (alice, carol, 1)]
    for donor, receiver, days in pairs:
        d = manager.request_rest_day_donation(league_id="lg", donor_member_id=donor.member_id, receiver_member_id=receiver.member_id, days=days)
        _approve(manager, d.donation_id)

    statuses = [manager.get_rest_day_status("lg", m.member_id) for m in (alice, bob, carol)]
    assert sum(s.donated for s in statuses) == sum(s.received for s in statuses) == 7


def test_donation_validation(manager, store, alice, bob):
    with pytest.raises(ValidationError):
        manager.request_rest_day_donation(league_id="lg", donor_member_id=alice.member_id, receiver_member_id=bob.member_id, days=0)
    with pytest.raises(ValidationError):
        manager.request_rest_day_donation(league_id="lg", donor_member_id=alice.member_id, receiver_member_id=alice.member_id, days=1)
    with pytest.raises(NotMember):
        manager.request_rest_day_donation(league_id="lg", donor_member_id="m_ghost", receiver_member_id=bob.member_id, days=1)

    store.add_league(League(league_id="lg2", name="Other"))
    outsider = manager.join_league(league_id="lg2", user_id="9001", display_name="Outsider")
    with pytest.raises(NotFoundError):
        manager.request_rest_day_donation(league_id="lg", donor_member_id=alice.member_id, receiver_member_id=outsider.member_id, days=1)

    _rest_days(manager, alice, 4)
    with pytest.raises(ConflictError):
        manager.request_rest_day_donation(league_id="lg", donor_member_id=alice.member_id, receiver_member_id=bob.member_id, days=2)


def test_final_approval_rechecks_allowance(manager, alice, bob, carol):
    first = manager.request_rest_day_donation(league_id="lg", donor_member_id=alice.member_id, receiver_member_id=bob.member_id, days=3)
    second = manager.request_rest_day_donation(league_id="lg", donor_member_id=alice.member_id, receiver_member_id=carol.member_id, days=3)
    _approve(manager, first.donation_id)

    manager.review_rest_day_donation(second.donation_id, "approve", reviewer_role="captain")
    with pytest.raises(ConflictError):
        manager.review_rest_day_donation(second.donation_id, "approve", reviewer_role="governor")
    assert manager.get_rest_day_status("lg", alice.member_id).remaining == 2


def test_review_flow_roles(manager, alice, bob):
    d = manager.request_rest_day_donation(league_id="lg", donor_member_id=alice.member_id, receiver_member_id=bob.member_id, days=1)

    with pytest.raises(AuthorizationError):
        manager.review_rest_day_donation(d.donation_id, "approve", reviewer_role="captain", reviewer_team_id="t_blue")
    d = manager.review_rest_day_donation(d.donation_id, "approve", reviewer_role="captain", reviewer_team_id="t_red")
    assert d.status == CAPTAIN_APPROVED

    with pytest.raises(AuthorizationError):
        manager.review_rest_day_donation(d.donation_id, "approve", reviewer_role="captain")

    d = manager.review_rest_day_donation(d.donation_id, "reject", reviewer_role="host")
    assert d.status == REJECTED
    with pytest.raises(ConflictError):
        manager.review_rest_day_donation(d.donation_id, "approve", reviewer_role="host")
    assert manager.get_rest_day_status("lg", alice.member_id).donated == 0


def test_governor_acting_first_does_captain_stage():
    assert next_donation_status(PENDING, "approve", "governor") == CAPTAIN_APPROVED
    assert next_donation_status(CAPTAIN_APPROVED, "approve", "host") == APPROVED
    assert next_donation_status(PENDING, "reject", "captain") == REJECTED


def test_next_donation_status_rejects_bad_input():
    with pytest.raises(ValidationError):
        next_donation_status(PENDING, "maybe", "host")
    with pytest.raises(AuthorizationError):
        next_donation_status(PENDING, "approve", "player")


def test_list_and_lookup_errors(manager, alice, bob):
    manager.request_rest_day_donation(league_id="lg", donor_member_id=alice.member_id, receiver_member_id=bob.member_id, days=1)
    assert len(manager.list_rest_day_donations("lg")) == 1
    with pytest.raises(NotFoundError):
        manager.review_rest_day_donation("d_missing", "approve", reviewer_role="host")
    with pytest.raises(NotFoundError):
        manager.get_rest_day_status("nope", alice.member_id)
