from datetime import date, datetime

import pytest
import pytz

from fitleague.challenges import (
    ACTIVE,
    CLOSED,
    DRAFT,
    SCHEDULED,
    SUBMISSION_CLOSED,
    check_submission,
    derive_status,
    normalize_stored_status,
    per_member_cap,
)
from fitleague.errors import (
    AlreadySubmitted,
    ChallengeEnded,
    ChallengeNotActive,
    ConflictError,
    MissingProof,
    NotFoundError,
    TeamRequired,
    ValidationError,
)
from fitleague.league_manager import LeagueManager
from fitleague.models import APPROVED, PENDING, REJECTED, Challenge, ChallengeSubmission, SubTeamMembership

from conftest import TODAY

START, END = date(2024, 3, 10), date(2024, 3, 20)
PROOF = "https://img.example/plank.png"


@pytest.mark.parametrize(
    "stored, today, reviewer, expected",
    [
        ("draft", date(2024, 3, 15), False, DRAFT),
        ("active", date(2024, 3, 10), False, ACTIVE),
        ("active", date(2024, 3, 20), False, ACTIVE),
        ("active", date(2024, 3, 9), False, SCHEDULED),
        ("active", date(2024, 3, 21), False, CLOSED),
        ("active", date(2024, 3, 21), True, SUBMISSION_CLOSED),
        ("published", date(2024, 3, 21), True, SUBMISSION_CLOSED),
        ("", date(2024, 3, 15), False, DRAFT),
        ("archived", date(2024, 3, 15), False, DRAFT),
    ],
)
def test_derive_status(stored, today, reviewer, expected):
    assert derive_status(stored, START, END, today, reviewer=reviewer) == expected


def test_derive_status_missing_dates():
    assert derive_status("upcoming", None, None, TODAY) == SCHEDULED
    assert derive_status("active", None, date(2024, 3, 1), TODAY) == CLOSED
    assert derive_status("active", None, date(2024, 3, 31), TODAY) == ACTIVE


def test_normalize_stored_status():
    assert normalize_stored_status(" Published ") == "published"
    assert normalize_stored_status("upcoming") == SCHEDULED
    assert normalize_stored_status("bogus") == DRAFT
    assert normalize_stored_status(None) == DRAFT


def test_fresh_proof_after_utc_cutoff_is_refused():
    ch = Challenge(challenge_id="c1", league_id="lg", start_date=START, end_date=END, status="active")
    with pytest.raises(ChallengeEnded):
        check_submission(ch, None, today=END, cutoff_today=date(2024, 3, 21))


def test_per_member_cap():
    assert per_member_cap(10, 3) == 3.33
    assert per_member_cap(10, 0) == 0.0


def test_submit_while_active(manager, alice, add_challenge):
    add_challenge()
    s = manager.submit_challenge_proof(challenge_id="c_plank", member_id=alice.member_id, proof_url=PROOF)
    assert s.status == PENDING
    assert s.team_id == "t_red"
    with pytest.raises(AlreadySubmitted):
        manager.submit_challenge_proof(challenge_id="c_plank", member_id=alice.member_id, proof_url=PROOF)


def test_submit_requires_proof_and_existing_challenge(manager, alice, add_challenge):
    add_challenge()
    with pytest.raises(MissingProof):
        manager.submit_challenge_proof(challenge_id="c_plank", member_id=alice.member_id, proof_url=" ")
    with pytest.raises(NotFoundError):
        manager.submit_challenge_proof(challenge_id="c_nope", member_id=alice.member_id, proof_url=PROOF)


def test_not_active_challenges(manager, alice, add_challenge):
    add_challenge("c_future", start=date(2024, 4, 1), end=date(2024, 4, 5))
    add_challenge("c_draft", status="draft")
    add_challenge("c_past", start=date(2024, 3, 1), end=date(2024, 3, 5))
    for cid in ("c_future", "c_draft", "c_past"):
        with pytest.raises(ChallengeNotActive):
            manager.submit_challenge_proof(challenge_id=cid, member_id=alice.member_id, proof_url=PROOF)


def test_rejected_submission_overwrites_same_row(manager, store, alice, add_challenge):
    add_challenge(status="published")
    first = manager.submit_challenge_proof(challenge_id="c_plank", member_id=alice.member_id, proof_url=PROOF)
    manager.review_challenge_submission(first.submission_id, "reject")

    again = manager.submit_challenge_proof(challenge_id="c_plank", member_id=alice.member_id, proof_url=PROOF + "?v=2")
    assert again.submission_id == first.submission_id
    assert again.status == PENDING
    assert again.proof_url.endswith("?v=2")
    assert len(store.submissions_for("c_plank")) == 1


def test_rejected_submission_can_be_redone_after_close(manager, store, alice, add_challenge):
    add_challenge(start=date(2024, 3, 1), end=date(2024, 3, 5))
    store.upsert_submission(
        ChallengeSubmission(submission_id="s_old", challenge_id="c_plank", member_id=alice.member_id, proof_url=PROOF, status=REJECTED)
    )
    s = manager.submit_challenge_proof(challenge_id="c_plank", member_id=alice.member_id, proof_url=PROOF, reviewer=True)
    assert s.submission_id == "s_old"
    assert s.status == PENDING


def test_team_challenge_requires_team(manager, alice, add_challenge):
    add_challenge(challenge_type="team")
    loner = manager.join_league(league_id="lg", user_id="3001", display_name="Loner")
    with pytest.raises(TeamRequired):
        manager.submit_challenge_proof(challenge_id="c_plank", member_id=loner.member_id, proof_url=PROOF)
    s = manager.submit_challenge_proof(challenge_id="c_plank", member_id=alice.member_id, proof_url=PROOF)
    assert s.team_id == "t_red"


def test_sub_team_challenge_attaches_sub_team(manager, store, alice, carol, add_challenge):
    add_challenge(challenge_type="sub_team")
    store.add_sub_team_membership(SubTeamMembership(challenge_id="c_plank", sub_team_id="st_1", member_id=alice.member_id))
    a = manager.submit_challenge_proof(challenge_id="c_plank", member_id=alice.member_id, proof_url=PROOF)
    c = manager.submit_challenge_proof(challenge_id="c_plank", member_id=carol.member_id, proof_url=PROOF)
    assert (a.team_id, a.sub_team_id) == ("t_red", "st_1")
    assert (c.team_id, c.sub_team_id) == ("t_red", None)


def test_sub_team_challenge_accepts_member_without_team(manager, add_challenge):
    add_challenge(challenge_type="sub_team")
    loner = manager.join_league(league_id="lg", user_id="3002", display_name="Loner")
    s = manager.submit_challenge_proof(challenge_id="c_plank", member_id=loner.member_id, proof_url=PROOF)
    assert (s.status, s.team_id, s.sub_team_id) == (PENDING, None, None)


def test_member_behind_utc_hits_end_date_cutoff(store, add_challenge):
    add_challenge(start=date(2024, 3, 10), end=date(2024, 3, 20))
    late = LeagueManager(store=store, clock=lambda: datetime(2024, 3, 21, 3, 0, tzinfo=pytz.UTC))
    m = late.join_league(league_id="lg", user_id="4001", display_name="West", timezone="America/Los_Angeles")
    assert late.today_for(m) == date(2024, 3, 20)
    with pytest.raises(ChallengeEnded):
        late.submit_challenge_proof(challenge_id="c_plank", member_id=m.member_id, proof_url=PROOF)


# ---------------- review ----------------
def _closed_with_pending(store, member, *, challenge_type="individual", total=10.0, add_challenge=None):
    add_challenge(challenge_type=challenge_type, start=date(2024, 3, 1), end=date(2024, 3, 10), total=total)
    return store.upsert_submission(
        ChallengeSubmission(
            submission_id="s_1",
            challenge_id="c_plank",
            member_id=member.member_id,
            proof_url=PROOF,
            team_id=member.team_id,
        )
    )


def test_review_not_allowed_while_active(manager, alice, add_challenge):
    add_challenge()
    s = manager.submit_challenge_proof(challenge_id="c_plank", member_id=alice.member_id, proof_url=PROOF)
    with pytest.raises(ValidationError):
        manager.review_challenge_submission(s.submission_id, "approve")


def test_approve_defaults_to_total_and_is_final(manager, store, alice, add_challenge):
    _closed_with_pending(store, alice, add_challenge=add_challenge)
    s = manager.review_challenge_submission("s_1", "approve")
    assert (s.status, s.awarded_points) == (APPROVED, 10.0)
    assert s.reviewed_at is not None
    with pytest.raises(ConflictError):
        manager.review_challenge_submission("s_1", "reject")


def test_awarded_points_bounds(manager, store, alice, add_challenge):
    _closed_with_pending(store, alice, add_challenge=add_challenge)
    with pytest.raises(ValidationError):
        manager.review_challenge_submission("s_1", "approve", awarded_points=11)
    with pytest.raises(ValidationError):
        manager.review_challenge_submission("s_1", "approve", awarded_points=-1)
    assert manager.review_challenge_submission("s_1", "approve", awarded_points=7.5).awarded_points == 7.5


def test_team_challenge_per_member_cap(manager, store, alice, carol, add_challenge):
    _closed_with_pending(store, alice, challenge_type="team", add_challenge=add_challenge)
    with pytest.raises(ValidationError):
        manager.review_challenge_submission("s_1", "approve", awarded_points=6)
    assert manager.review_challenge_submission("s_1", "approve", awarded_points=5).awarded_points == 5


def test_reject_clears_points(manager, store, alice, add_challenge):
    _closed_with_pending(store, alice, add_challenge=add_challenge)
    s = manager.review_challenge_submission("s_1", "reject", awarded_points=4)
    assert (s.status, s.awarded_points) == (REJECTED, None)


def test_review_unknown_submission(manager):
    with pytest.raises(NotFoundError):
        manager.review_challenge_submission("s_missing", "approve")
