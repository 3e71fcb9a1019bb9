from __future__ import annotations

import logging
from datetime import date
from typing import Optional

import discord
from discord import app_commands

from .config import AppConfig
from .errors import LeagueError, ValidationError
from .league_manager import LeagueManager
from .leaderboard import Leaderboard
from .models import ActivityMetrics, Member

LOGGER = logging.getLogger(__name__)

_LEADERBOARD_LINES = 10


def _as_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError("Date must be YYYY-MM-DD") from e


def _metrics(
    duration: Optional[float],
    distance: Optional[float],
    steps: Optional[int],
    holes: Optional[int],
) -> ActivityMetrics:
    return ActivityMetrics(duration=duration, distance=distance, steps=steps, holes=holes)


def _proof(attachment: Optional[discord.Attachment], url: Optional[str]) -> Optional[str]:
    if attachment is not None:
        return attachment.url
    return (url or "").strip() or None


def _format_leaderboard(board: Leaderboard) -> str:
    window = f"{board.start_date.isoformat() if board.start_date else '…'} → {board.end_date.isoformat() if board.end_date else '…'}"
    lines = [f"🏆 **Leaderboard** ({window})", "", "**Teams**"]
    for t in board.teams[:_LEADERBOARD_LINES]:
        score = f"{t.normalized_points:g} (raw {t.total_points:g})" if board.normalized else f"{t.total_points:g}"
        lines.append(f"{t.rank}. {t.team_name}: **{score}** pts · avg RR {t.avg_rr:.2f} · {t.member_count} members")
    if not board.teams:
        lines.append("No teams yet.")

    lines += ["", "**Individuals**"]
    for r in board.individuals[:_LEADERBOARD_LINES]:
        team = f" ({r.team_name})" if r.team_name else ""
        lines.append(f"{r.rank}. {r.display_name}{team}: **{r.points:g}** pts · avg RR {r.avg_rr:.2f} · 🔥 {r.current_streak}")
    if not board.individuals:
        lines.append("No entries yet.")

    s = board.stats
    lines += ["", f"Submissions: {s.get('total_submissions', 0)} (✅ {s.get('approved', 0)} · ⏳ {s.get('pending', 0)} · ❌ {s.get('rejected', 0)})"]
    return "\n".join(lines)


def register_command_groups(bot: discord.Client, manager: LeagueManager, app_config: AppConfig) -> None:
    tree = bot.tree
    league_id = app_config.bot.league_id

    def _member_for(interaction: discord.Interaction) -> Optional[Member]:
        return manager.find_member(league_id, str(interaction.user.id))

    def _is_admin(interaction: discord.Interaction) -> bool:
        if not interaction.user or not isinstance(interaction.user, discord.Member):
            return False
        return interaction.user.guild_permissions.manage_guild

    async def _fail(interaction: discord.Interaction, e: Exception) -> None:
        if isinstance(e, LeagueError):
            msg = f"❌ {e}"
        else:
            LOGGER.exception("Command /%s failed", interaction.command.qualified_name if interaction.command else "?")
            msg = "❌ Something went wrong. Try again in a moment."
        if interaction.response.is_done():
            await interaction.followup.send(msg, ephemeral=True)
        else:
            await interaction.response.send_message(msg, ephemeral=True)

    async def _not_joined(interaction: discord.Interaction) -> None:
        await interaction.response.send_message("❌ You’re not in the league yet. Use **/join** first.", ephemeral=True)

    async def _not_admin(interaction: discord.Interaction) -> None:
        await interaction.response.send_message("❌ You need **Manage Server** to run this.", ephemeral=True)

    # ---------------- /join ----------------
    @tree.command(name="join", description="Join the league")
    @app_commands.describe(
        team_id="Team to join (optional)",
        timezone="IANA tz like America/Los_Angeles (or PST/EST etc)",
        tz_offset_minutes="Minutes behind UTC if you have no IANA zone (UTC-8 -> 480)",
        date_of_birth="YYYY-MM-DD (optional; adjusts step/duration thresholds)",
    )
    async def join_cmd(
        interaction: discord.Interaction,
        team_id: Optional[str] = None,
        timezone: Optional[str] = None,
        tz_offset_minutes: Optional[int] = None,
        date_of_birth: Optional[str] = None,
    ) -> None:
        try:
            m = manager.join_league(
                league_id=league_id,
                user_id=str(interaction.user.id),
                display_name=interaction.user.display_name,
                team_id=(team_id or "").strip() or None,
                timezone=timezone,
                tz_offset_minutes=tz_offset_minutes,
                date_of_birth=_as_date(date_of_birth) if date_of_birth else None,
            )
            await interaction.response.send_message(
                f"✅ Joined as **{m.display_name}**"
                + (f" on team `{m.team_id}`" if m.team_id else "")
                + f". Your local date today is **{manager.today_for(m).isoformat()}**.\n"
                "Next: log today with **/submit**.",
                ephemeral=True,
            )
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /submit ----------------
    @tree.command(name="submit", description="Submit today's workout or rest day")
    @app_commands.describe(
        kind="workout or rest",
        activity="run, cycling, steps, golf, yoga, ...",
        duration="Minutes",
        distance="Kilometres",
        steps="Step count",
        holes="Golf holes played",
        proof="Screenshot or photo (required for workouts)",
        proof_url="Link to proof instead of an upload",
        notes="Optional note",
    )
    async def submit_cmd(
        interaction: discord.Interaction,
        kind: str,
        activity: Optional[str] = None,
        duration: Optional[float] = None,
        distance: Optional[float] = None,
        steps: Optional[int] = None,
        holes: Optional[int] = None,
        proof: Optional[discord.Attachment] = None,
        proof_url: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        try:
            m = _member_for(interaction)
            if not m:
                await _not_joined(interaction)
                return
            e = manager.submit_daily_entry(
                member_id=m.member_id,
                kind=kind,
                subtype=activity,
                metrics=_metrics(duration, distance, steps, holes),
                proof_url=_proof(proof, proof_url),
                notes=notes,
            )
            extra = "\n⚠️ You are at your rest-day limit; this was sent as an exemption request." if e.exemption_request else ""
            await interaction.response.send_message(
                f"✅ Submitted **{e.kind}** for **{e.entry_date.isoformat()}** (RR **{e.rr_value:.2f}**). "
                f"Pending review. Entry `{e.entry_id}`.{extra}",
                ephemeral=True,
            )
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /resubmit ----------------
    @tree.command(name="resubmit", description="Resubmit a rejected entry")
    @app_commands.describe(
        entry_id="The rejected entry",
        kind="workout or rest",
        activity="run, cycling, steps, golf, yoga, ...",
        duration="Minutes",
        distance="Kilometres",
        steps="Step count",
        holes="Golf holes played",
        proof="New screenshot or photo",
        proof_url="Link to proof instead of an upload",
    )
    async def resubmit_cmd(
        interaction: discord.Interaction,
        entry_id: str,
        kind: str = "workout",
        activity: Optional[str] = None,
        duration: Optional[float] = None,
        distance: Optional[float] = None,
        steps: Optional[int] = None,
        holes: Optional[int] = None,
        proof: Optional[discord.Attachment] = None,
        proof_url: Optional[str] = None,
    ) -> None:
        try:
            m = _member_for(interaction)
            if not m:
                await _not_joined(interaction)
                return
            e = manager.submit_daily_entry(
                member_id=m.member_id,
                kind=kind,
                subtype=activity,
                metrics=_metrics(duration, distance, steps, holes),
                proof_url=_proof(proof, proof_url),
                resubmit_of=entry_id.strip(),
            )
            await interaction.response.send_message(
                f"✅ Resubmitted **{e.entry_date.isoformat()}** (RR **{e.rr_value:.2f}**). Entry `{e.entry_id}`.",
                ephemeral=True,
            )
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /preview ----------------
    @tree.command(name="preview", description="Preview the RR a workout would score")
    @app_commands.describe(
        activity="run, cycling, steps, golf, yoga, ...",
        duration="Minutes",
        distance="Kilometres",
        steps="Step count",
        holes="Golf holes played",
    )
    async def preview_cmd(
        interaction: discord.Interaction,
        activity: Optional[str] = None,
        duration: Optional[float] = None,
        distance: Optional[float] = None,
        steps: Optional[int] = None,
        holes: Optional[int] = None,
    ) -> None:
        try:
            m = _member_for(interaction)
            p = manager.preview_score(
                kind="workout",
                subtype=activity,
                metrics=_metrics(duration, distance, steps, holes),
                member_id=m.member_id if m else None,
                league_id=league_id,
            )
            verdict = "✅ would be accepted" if p["can_submit"] else f"❌ below the {p['min_rr']:.1f} minimum"
            await interaction.response.send_message(
                f"RR **{p['rr_value']:.2f}** (max {p['max_rr']:.1f}): {verdict}.",
                ephemeral=True,
            )
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /entries ----------------
    @tree.command(name="entries", description="List your recent entries")
    async def entries_cmd(interaction: discord.Interaction) -> None:
        try:
            m = _member_for(interaction)
            if not m:
                await _not_joined(interaction)
                return
            rows = manager.list_member_entries(m.member_id)[-15:]
            if not rows:
                await interaction.response.send_message("No entries yet.", ephemeral=True)
                return
            icons = {"approved": "✅", "pending": "⏳", "rejected": "❌"}
            lines = [
                f"{icons.get(e.status, '•')} {e.entry_date.isoformat()} {e.kind}"
                + (f" ({e.subtype})" if e.subtype else "")
                + f" RR {e.rr_value:.2f} `{e.entry_id}`"
                for e in reversed(rows)
            ]
            await interaction.response.send_message("\n".join(lines), ephemeral=True)
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /review (group) ----------------
    review_group = app_commands.Group(name="review", description="Review submissions (requires Manage Server)")

    @review_group.command(name="entry", description="Approve or reject a pending daily entry")
    @app_commands.describe(entry_id="Entry to review", decision="approve or reject")
    async def review_entry(interaction: discord.Interaction, entry_id: str, decision: str) -> None:
        if not _is_admin(interaction):
            await _not_admin(interaction)
            return
        try:
            e = manager.review_daily_entry(entry_id.strip(), decision)
            await interaction.response.send_message(f"✅ Entry `{e.entry_id}` is now **{e.status}**.", ephemeral=True)
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /challenge (group) ----------------
    challenge_group = app_commands.Group(name="challenge", description="League challenges")

    @challenge_group.command(name="submit", description="Submit proof for a challenge")
    @app_commands.describe(challenge_id="Challenge id", proof="Screenshot or photo", proof_url="Link to proof instead of an upload")
    async def challenge_submit(
        interaction: discord.Interaction,
        challenge_id: str,
        proof: Optional[discord.Attachment] = None,
        proof_url: Optional[str] = None,
    ) -> None:
        try:
            m = _member_for(interaction)
            if not m:
                await _not_joined(interaction)
                return
            s = manager.submit_challenge_proof(
                challenge_id=challenge_id.strip(),
                member_id=m.member_id,
                proof_url=_proof(proof, proof_url) or "",
                reviewer=_is_admin(interaction),
            )
            await interaction.response.send_message(
                f"✅ Proof submitted for `{s.challenge_id}`. Submission `{s.submission_id}` is pending review.",
                ephemeral=True,
            )
        except Exception as e:
            await _fail(interaction, e)

    @challenge_group.command(name="review", description="Approve or reject a challenge submission (Manage Server)")
    @app_commands.describe(submission_id="Submission to review", decision="approve or reject", points="Points to award (defaults to the challenge total)")
    async def challenge_review(
        interaction: discord.Interaction,
        submission_id: str,
        decision: str,
        points: Optional[float] = None,
    ) -> None:
        if not _is_admin(interaction):
            await _not_admin(interaction)
            return
        try:
            s = manager.review_challenge_submission(submission_id.strip(), decision, awarded_points=points)
            pts = f" ({s.awarded_points:g} pts)" if s.awarded_points is not None else ""
            await interaction.response.send_message(f"✅ Submission `{s.submission_id}` is now **{s.status}**{pts}.", ephemeral=True)
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /leaderboard ----------------
    @tree.command(name="leaderboard", description="Show the league leaderboard")
    @app_commands.describe(start="YYYY-MM-DD (defaults to league start)", end="YYYY-MM-DD (defaults to today)")
    async def leaderboard_cmd(
        interaction: discord.Interaction,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> None:
        try:
            board = manager.get_leaderboard(
                league_id,
                start=_as_date(start) if start else None,
                end=_as_date(end) if end else None,
            )
            await interaction.response.send_message(_format_leaderboard(board))
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /restdays ----------------
    @tree.command(name="restdays", description="Show your rest-day allowance")
    async def restdays_cmd(interaction: discord.Interaction) -> None:
        try:
            m = _member_for(interaction)
            if not m:
                await _not_joined(interaction)
                return
            st = manager.get_rest_day_status(league_id, m.member_id)
            await interaction.response.send_message(
                f"Rest days: **{st.used} / {st.total_allowed}** used, **{st.remaining}** remaining\n"
                f"Pending rest entries: **{st.pending}** (exemption requests: {st.exemptions_pending})\n"
                f"Donations received: **{st.received}** · donated: **{st.donated}**"
                + ("\n⚠️ You are at your limit." if st.is_at_limit else ""),
                ephemeral=True,
            )
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /donate ----------------
    @tree.command(name="donate", description="Donate rest days to a teammate")
    @app_commands.describe(receiver="Who gets the days", days="How many (>=1)", notes="Optional note")
    async def donate_cmd(
        interaction: discord.Interaction,
        receiver: discord.Member,
        days: int,
        notes: Optional[str] = None,
    ) -> None:
        try:
            m = _member_for(interaction)
            if not m:
                await _not_joined(interaction)
                return
            r = manager.find_member(league_id, str(receiver.id))
            if not r:
                await interaction.response.send_message(f"❌ {receiver.display_name} is not in the league.", ephemeral=True)
                return
            d = manager.request_rest_day_donation(
                league_id=league_id,
                donor_member_id=m.member_id,
                receiver_member_id=r.member_id,
                days=days,
                notes=notes,
            )
            await interaction.response.send_message(
                f"✅ Requested **{d.days_transferred}** rest day(s) for {receiver.mention}. Donation `{d.donation_id}` awaits approval.",
                ephemeral=True,
            )
        except Exception as e:
            await _fail(interaction, e)

    # ---------------- /donation (group) ----------------
    donation_group = app_commands.Group(name="donation", description="Rest-day donations")

    @donation_group.command(name="review", description="Approve or reject a donation (Manage Server)")
    @app_commands.describe(
        donation_id="Donation to review",
        decision="approve or reject",
        role="captain, governor, or host",
        team_id="Reviewer's team (captains)",
    )
    async def donation_review(
        interaction: discord.Interaction,
        donation_id: str,
        decision: str,
        role: str = "host",
        team_id: Optional[str] = None,
    ) -> None:
        if not _is_admin(interaction):
            await _not_admin(interaction)
            return
        try:
            d = manager.review_rest_day_donation(
                donation_id.strip(),
                decision,
                reviewer_role=role,
                reviewer_team_id=(team_id or "").strip() or None,
            )
            await interaction.response.send_message(f"✅ Donation `{d.donation_id}` is now **{d.status}**.", ephemeral=True)
        except Exception as e:
            await _fail(interaction, e)

    @donation_group.command(name="list", description="List rest-day donations in this league")
    async def donation_list(interaction: discord.Interaction) -> None:
        try:
            rows = manager.list_rest_day_donations(league_id)[:15]
            if not rows:
                await interaction.response.send_message("No donations yet.", ephemeral=True)
                return
            lines = [
                f"`{d.donation_id}` {d.donor_member_id} → {d.receiver_member_id}: {d.days_transferred} day(s) **{d.status}**"
                for d in rows
            ]
            await interaction.response.send_message("\n".join(lines), ephemeral=True)
        except Exception as e:
            await _fail(interaction, e)

    tree.add_command(review_group)
    tree.add_command(challenge_group)
    tree.add_command(donation_group)
