"""Google Sheets backed league store using gspread."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, List, Optional
import logging

import gspread
import pytz
from gspread import Worksheet
from gspread.exceptions import APIError, WorksheetNotFound
from gspread.utils import rowcol_to_a1

from google.oauth2.service_account import Credentials

from .config import SheetsConfig
from .errors import NotFoundError, StorageError
from .models import (
    CHALLENGE_TYPES,
    DONATION_STATUSES,
    ENTRY_KINDS,
    MEASUREMENT_TYPES,
    PENDING,
    REVIEW_STATUSES,
    ActivityMetrics,
    ActivityType,
    Challenge,
    ChallengeSubmission,
    EffortEntry,
    League,
    Member,
    RestDayDonation,
    SubTeamMembership,
    Team,
)
from .store import (
    ACTIVITIES,
    CHALLENGES,
    DONATIONS,
    ENTRIES,
    KEY_FIELDS,
    LEAGUES,
    MEMBERS,
    SUB_TEAMS,
    SUBMISSIONS,
    TEAMS,
    LeagueStore,
    row_key,
)

LOGGER = logging.getLogger(__name__)


def _service_account_credentials(creds_path: str) -> Credentials:
    scopes = [
        "https://www.googleapis.com/auth/spreadsheets",
        "https://www.googleapis.com/auth/drive.file",
    ]
    return Credentials.from_service_account_file(creds_path, scopes=scopes)


def _strip_headers(headers: List[str]) -> List[str]:
    return [str(h or "").strip() for h in headers]


def _headers_have_blanks_or_dupes(headers: List[str]) -> bool:
    cleaned = _strip_headers(headers)
    nonempty = [h for h in cleaned if h]
    return (len(nonempty) != len(set(nonempty))) or (len(nonempty) != len(cleaned))


def _safe_get_all_records(ws: Worksheet, *, expected_headers: Optional[List[str]] = None) -> List[dict]:
    """gspread raises if header row contains duplicates or blanks."""
    try:
        headers = ws.row_values(1)
        if expected_headers and _headers_have_blanks_or_dupes(headers):
            LOGGER.warning("⚠️ Sheet '%s' has blank/duplicate headers: %s. Using expected_headers.", ws.title, headers)
            return ws.get_all_records(expected_headers=expected_headers, head=1, default_blank="")
        return ws.get_all_records(head=1, default_blank="")
    except APIError:
        raise
    except Exception as e:
        if expected_headers:
            LOGGER.warning("⚠️ get_all_records failed on '%s' (%s). Using expected_headers fallback.", ws.title, e)
            return ws.get_all_records(expected_headers=expected_headers, head=1, default_blank="")
        raise


# ---------------- cell codecs ----------------
def _text(v) -> str:
    return str(v if v is not None else "").strip()


def _opt_text(v) -> Optional[str]:
    return _text(v) or None


def _opt_date(v) -> Optional[date]:
    raw = _text(v)
    return date.fromisoformat(raw) if raw else None


def _opt_datetime(v) -> Optional[datetime]:
    raw = _text(v)
    if not raw:
        return None
    dt = datetime.fromisoformat(raw)
    return dt if dt.tzinfo else pytz.UTC.localize(dt)


def _opt_float(v) -> Optional[float]:
    raw = _text(v)
    return float(raw) if raw else None


def _opt_int(v) -> Optional[int]:
    raw = _text(v)
    return int(float(raw)) if raw else None


def _choice(v, allowed, default: Optional[str] = None) -> str:
    raw = _text(v).lower() or default
    if raw not in allowed:
        raise ValueError(f"unexpected value '{raw}'")
    return raw


def _bool(v) -> bool:
    return _text(v).lower() in ("true", "1", "yes")


def _cell(v) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "TRUE" if v else "FALSE"
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return str(v)


@dataclass(frozen=True, slots=True)
class SheetCodec:
    title: str
    headers: List[str]
    encode: Callable[[object], Dict[str, object]]
    decode: Callable[[dict], object]


ENTRY_HEADERS = [
    "entry_id",
    "member_id",
    "date",
    "type",
    "workout_type",
    "duration",
    "distance",
    "steps",
    "holes",
    "rr_value",
    "proof_url",
    "status",
    "reupload_of",
    "notes",
    "exemption_request",
    "created_at",
    "modified_at",
]


def _encode_entry(e: EffortEntry) -> Dict[str, object]:
    return {
        "entry_id": e.entry_id,
        "member_id": e.member_id,
        "date": e.entry_date,
        "type": e.kind,
        "workout_type": e.subtype,
        "duration": e.metrics.duration,
        "distance": e.metrics.distance,
        "steps": e.metrics.steps,
        "holes": e.metrics.holes,
        "rr_value": e.rr_value,
        "proof_url": e.proof_url,
        "status": e.status,
        "reupload_of": e.reupload_of,
        "notes": e.notes,
        "exemption_request": e.exemption_request,
        "created_at": e.created_at,
        "modified_at": e.modified_at,
    }


def _decode_entry(r: dict) -> EffortEntry:
    return EffortEntry(
        entry_id=_text(r.get("entry_id")),
        member_id=_text(r.get("member_id")),
        entry_date=date.fromisoformat(_text(r.get("date"))),
        kind=_choice(r.get("type"), ENTRY_KINDS),
        subtype=_opt_text(r.get("workout_type")),
        metrics=ActivityMetrics(
            duration=_opt_float(r.get("duration")),
            distance=_opt_float(r.get("distance")),
            steps=_opt_int(r.get("steps")),
            holes=_opt_int(r.get("holes")),
        ),
        rr_value=_opt_float(r.get("rr_value")) or 0.0,
        proof_url=_opt_text(r.get("proof_url")),
        status=_choice(r.get("status"), REVIEW_STATUSES, PENDING),
        reupload_of=_opt_text(r.get("reupload_of")),
        notes=_opt_text(r.get("notes")),
        exemption_request=_bool(r.get("exemption_request")),
        created_at=_opt_datetime(r.get("created_at")),
        modified_at=_opt_datetime(r.get("modified_at")),
    )


CODECS: Dict[str, SheetCodec] = {
    LEAGUES: SheetCodec(
        title="Leagues",
        headers=["league_id", "name", "start_date", "end_date", "rest_days", "normalize_points"],
        encode=lambda lg: {
            "league_id": lg.league_id,
            "name": lg.name,
            "start_date": lg.start_date,
            "end_date": lg.end_date,
            "rest_days": lg.rest_days,
            "normalize_points": lg.normalize_points,
        },
        decode=lambda r: League(
            league_id=_text(r.get("league_id")),
            name=_text(r.get("name")),
            start_date=_opt_date(r.get("start_date")),
            end_date=_opt_date(r.get("end_date")),
            rest_days=_opt_int(r.get("rest_days")) or 0,
            normalize_points=_bool(r.get("normalize_points")),
        ),
    ),
    TEAMS: SheetCodec(
        title="Teams",
        headers=["team_id", "league_id", "name"],
        encode=lambda t: {"team_id": t.team_id, "league_id": t.league_id, "name": t.name},
        decode=lambda r: Team(
            team_id=_text(r.get("team_id")),
            league_id=_text(r.get("league_id")),
            name=_text(r.get("name")),
        ),
    ),
    MEMBERS: SheetCodec(
        title="Members",
        headers=[
            "member_id",
            "league_id",
            "user_id",
            "display_name",
            "team_id",
            "date_of_birth",
            "timezone",
            "tz_offset_minutes",
            "legacy_tz_offset",
        ],
        encode=lambda m: {
            "member_id": m.member_id,
            "league_id": m.league_id,
            "user_id": m.user_id,
            "display_name": m.display_name,
            "team_id": m.team_id,
            "date_of_birth": m.date_of_birth,
            "timezone": m.timezone,
            "tz_offset_minutes": m.tz_offset_minutes,
            "legacy_tz_offset": m.legacy_tz_offset,
        },
        decode=lambda r: Member(
            member_id=_text(r.get("member_id")),
            league_id=_text(r.get("league_id")),
            user_id=_text(r.get("user_id")),
            display_name=_text(r.get("display_name")),
            team_id=_opt_text(r.get("team_id")),
            date_of_birth=_opt_date(r.get("date_of_birth")),
            timezone=_opt_text(r.get("timezone")),
            tz_offset_minutes=_opt_int(r.get("tz_offset_minutes")),
            legacy_tz_offset=_opt_int(r.get("legacy_tz_offset")),
        ),
    ),
    ACTIVITIES: SheetCodec(
        title="Activities",
        headers=["activity_id", "measurement_type", "league_id"],
        encode=lambda a: {
            "activity_id": a.activity_id,
            "measurement_type": a.measurement_type,
            "league_id": a.league_id,
        },
        decode=lambda r: ActivityType(
            activity_id=_text(r.get("activity_id")),
            measurement_type=_choice(r.get("measurement_type"), MEASUREMENT_TYPES, "duration"),
            league_id=_text(r.get("league_id")),
        ),
    ),
    ENTRIES: SheetCodec(
        title="Entries",
        headers=ENTRY_HEADERS,
        encode=_encode_entry,
        decode=_decode_entry,
    ),
    CHALLENGES: SheetCodec(
        title="Challenges",
        headers=["challenge_id", "league_id", "name", "challenge_type", "start_date", "end_date", "status", "total_points"],
        encode=lambda c: {
            "challenge_id": c.challenge_id,
            "league_id": c.league_id,
            "name": c.name,
            "challenge_type": c.challenge_type,
            "start_date": c.start_date,
            "end_date": c.end_date,
            "status": c.status,
            "total_points": c.total_points,
        },
        decode=lambda r: Challenge(
            challenge_id=_text(r.get("challenge_id")),
            league_id=_text(r.get("league_id")),
            name=_text(r.get("name")),
            challenge_type=_choice(r.get("challenge_type"), CHALLENGE_TYPES, "individual"),
            start_date=_opt_date(r.get("start_date")),
            end_date=_opt_date(r.get("end_date")),
            status=_text(r.get("status")).lower() or "draft",
            total_points=_opt_float(r.get("total_points")) or 0.0,
        ),
    ),
    SUB_TEAMS: SheetCodec(
        title="SubTeams",
        headers=["challenge_id", "sub_team_id", "member_id"],
        encode=lambda s: {"challenge_id": s.challenge_id, "sub_team_id": s.sub_team_id, "member_id": s.member_id},
        decode=lambda r: SubTeamMembership(
            challenge_id=_text(r.get("challenge_id")),
            sub_team_id=_text(r.get("sub_team_id")),
            member_id=_text(r.get("member_id")),
        ),
    ),
    SUBMISSIONS: SheetCodec(
        title="ChallengeSubmissions",
        headers=[
            "submission_id",
            "challenge_id",
            "member_id",
            "team_id",
            "sub_team_id",
            "proof_url",
            "status",
            "awarded_points",
            "created_at",
            "reviewed_at",
        ],
        encode=lambda s: {
            "submission_id": s.submission_id,
            "challenge_id": s.challenge_id,
            "member_id": s.member_id,
            "team_id": s.team_id,
            "sub_team_id": s.sub_team_id,
            "proof_url": s.proof_url,
            "status": s.status,
            "awarded_points": s.awarded_points,
            "created_at": s.created_at,
            "reviewed_at": s.reviewed_at,
        },
        decode=lambda r: ChallengeSubmission(
            submission_id=_text(r.get("submission_id")),
            challenge_id=_text(r.get("challenge_id")),
            member_id=_text(r.get("member_id")),
            proof_url=_text(r.get("proof_url")),
            team_id=_opt_text(r.get("team_id")),
            sub_team_id=_opt_text(r.get("sub_team_id")),
            status=_choice(r.get("status"), REVIEW_STATUSES, PENDING),
            awarded_points=_opt_float(r.get("awarded_points")),
            created_at=_opt_datetime(r.get("created_at")),
            reviewed_at=_opt_datetime(r.get("reviewed_at")),
        ),
    ),
    DONATIONS: SheetCodec(
        title="RestDayDonations",
        headers=[
            "donation_id",
            "league_id",
            "donor_member_id",
            "receiver_member_id",
            "days_transferred",
            "status",
            "notes",
            "proof_url",
            "created_at",
            "captain_approved_at",
            "final_approved_at",
        ],
        encode=lambda d: {
            "donation_id": d.donation_id,
            "league_id": d.league_id,
            "donor_member_id": d.donor_member_id,
            "receiver_member_id": d.receiver_member_id,
            "days_transferred": d.days_transferred,
            "status": d.status,
            "notes": d.notes,
            "proof_url": d.proof_url,
            "created_at": d.created_at,
            "captain_approved_at": d.captain_approved_at,
            "final_approved_at": d.final_approved_at,
        },
        decode=lambda r: RestDayDonation(
            donation_id=_text(r.get("donation_id")),
            league_id=_text(r.get("league_id")),
            donor_member_id=_text(r.get("donor_member_id")),
            receiver_member_id=_text(r.get("receiver_member_id")),
            days_transferred=_opt_int(r.get("days_transferred")) or 0,
            status=_choice(r.get("status"), DONATION_STATUSES, PENDING),
            notes=_opt_text(r.get("notes")),
            proof_url=_opt_text(r.get("proof_url")),
            created_at=_opt_datetime(r.get("created_at")),
            captain_approved_at=_opt_datetime(r.get("captain_approved_at")),
            final_approved_at=_opt_datetime(r.get("final_approved_at")),
        ),
    ),
}


class GoogleSheetsStore(LeagueStore):
    """One worksheet per row kind. Missing worksheets and header columns are created on demand."""

    def __init__(self, config: SheetsConfig, *, spreadsheet=None) -> None:
        super().__init__()
        self.config = config
        if spreadsheet is None:
            if not config.credentials_path:
                raise RuntimeError("Google Sheets credentials path is not configured")
            credentials = _service_account_credentials(str(config.credentials_path))
            client = gspread.authorize(credentials)
            spreadsheet = client.open_by_key(config.spreadsheet_id)
        self.spreadsheet = spreadsheet
        self._worksheets: Dict[str, Worksheet] = {}

    def _worksheet(self, kind: str) -> Worksheet:
        codec = CODECS[kind]
        ws = self._worksheets.get(codec.title)
        if ws is not None:
            return ws
        try:
            ws = self.spreadsheet.worksheet(codec.title)
        except WorksheetNotFound:
            LOGGER.info("Creating worksheet '%s'", codec.title)
            ws = self.spreadsheet.add_worksheet(title=codec.title, rows=1000, cols=len(codec.headers))
        self._ensure_headers(ws, codec.headers)
        self._worksheets[codec.title] = ws
        return ws

    def _ensure_headers(self, ws: Worksheet, required: List[str]) -> None:
        headers = _strip_headers(ws.row_values(1))
        if not headers:
            ws.insert_row(required, 1)
            return
        if _headers_have_blanks_or_dupes(headers):
            return
        changed = False
        for h in required:
            if h not in headers:
                headers.append(h)
                changed = True
        if changed:
            ws.delete_rows(1)
            ws.insert_row(headers, 1)

    def _headers(self, ws: Worksheet, kind: str) -> List[str]:
        headers = _strip_headers(ws.row_values(1))
        if _headers_have_blanks_or_dupes(headers):
            return list(CODECS[kind].headers)
        return headers

    # ---------------- primitives ----------------
    def _load(self, kind: str) -> list:
        codec = CODECS[kind]
        with self._lock:
            try:
                ws = self._worksheet(kind)
                records = _safe_get_all_records(ws, expected_headers=codec.headers)
            except APIError as e:
                LOGGER.exception("Failed to read worksheet '%s'", codec.title)
                raise StorageError(f"Could not read {codec.title}: {e}") from e

        rows = []
        for r in records:
            if not any(_text(v) for v in r.values()):
                continue
            try:
                rows.append(codec.decode(r))
            except Exception as e:
                LOGGER.warning("⚠️ Skipping malformed %s row: %s | %s", codec.title, r, e)
        return rows

    def _insert(self, kind: str, row) -> None:
        codec = CODECS[kind]
        with self._lock:
            try:
                ws = self._worksheet(kind)
                record = codec.encode(row)
                values = [_cell(record.get(h)) for h in self._headers(ws, kind)]
                ws.append_row(values, value_input_option="RAW")
            except APIError as e:
                LOGGER.exception("Failed to append to worksheet '%s'", codec.title)
                raise StorageError(f"Could not write {codec.title}: {e}") from e

    def _update(self, kind: str, row) -> None:
        codec = CODECS[kind]
        key_field = KEY_FIELDS[kind]
        key = row_key(kind, row)
        with self._lock:
            try:
                ws = self._worksheet(kind)
                headers = self._headers(ws, kind)
                key_col = headers.index(key_field) + 1
                row_idx = None
                for i, v in enumerate(ws.col_values(key_col), start=1):
                    if i > 1 and _text(v) == key:
                        row_idx = i
                        break
                if row_idx is None:
                    raise NotFoundError(f"{codec.title} row {key} not found")

                record = codec.encode(row)
                current = ws.row_values(row_idx)
                current += [""] * (len(headers) - len(current))
                values = [
                    _cell(record.get(h)) if h in record else current[i]
                    for i, h in enumerate(headers)
                ]
                span = f"{rowcol_to_a1(row_idx, 1)}:{rowcol_to_a1(row_idx, len(headers))}"
                ws.update(range_name=span, values=[values], value_input_option="RAW")
            except APIError as e:
                LOGGER.exception("Failed to update worksheet '%s'", codec.title)
                raise StorageError(f"Could not update {codec.title}: {e}") from e
