"""Outgoing email notifications through the SendGrid HTTP API.

Delivery is fire-and-forget: failures are logged and never raised, so a
notification problem cannot undo the state change that triggered it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from .config import (
    get_sendgrid_api_key,
    get_mail_from,
    get_league_admin_email,
    get_dashboard_url,
)
from .models import Match, User, Ladder

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
LEAGUE_NAME = "Vancouver Pickleball Smash"

# replaced in tests with ``httpx.MockTransport``
_transport: httpx.AsyncBaseTransport | None = None


@dataclass
class Email:
    to: str
    subject: str
    text: str
    html: str | None = None


def _payload(email: Email) -> dict:
    content = [{"type": "text/plain", "value": email.text}]
    if email.html:
        content.append({"type": "text/html", "value": email.html})
    return {
        "personalizations": [{"to": [{"email": email.to}]}],
        "from": _parse_from(get_mail_from()),
        "subject": email.subject,
        "content": content,
    }


def _parse_from(value: str) -> dict:
    """Split ``"Name <addr>"`` into SendGrid's ``from`` object."""
    if "<" in value and value.endswith(">"):
        name, addr = value[:-1].split("<", 1)
        return {"email": addr.strip(), "name": name.strip()}
    return {"email": value.strip()}


async def _send_one(client: httpx.AsyncClient, email: Email) -> bool:
    try:
        resp = await client.post(SENDGRID_URL, json=_payload(email))
    except httpx.HTTPError as exc:
        logger.warning("Email to %s failed: %s", email.to, exc)
        return False
    if resp.status_code >= 400:
        logger.warning(
            "Email to %s rejected with %s: %s", email.to, resp.status_code, resp.text[:200]
        )
        return False
    logger.info("Email sent to %s: %s", email.to, email.subject)
    return True


async def _send_all(emails: list[Email], api_key: str) -> list[bool]:
    headers = {"Authorization": f"Bearer {api_key}"}
    async with httpx.AsyncClient(headers=headers, timeout=5, transport=_transport) as client:
        return await asyncio.gather(*(_send_one(client, e) for e in emails))


def send_emails(emails: list[Email]) -> list[bool]:
    """Deliver ``emails`` concurrently and return per-message success."""
    emails = [e for e in emails if e.to]
    if not emails:
        return []
    api_key = get_sendgrid_api_key()
    if not api_key:
        logger.info("SENDGRID_API_KEY not set, skipping %d email(s)", len(emails))
        return [False] * len(emails)
    try:
        return asyncio.run(_send_all(emails, api_key))
    except Exception:
        logger.exception("Email dispatch failed")
        return [False] * len(emails)


def _contact_line(user: User) -> str:
    return f"{user.name} ({user.email or 'no email'}, phone: {user.phone or 'Not provided'})"


def match_created_emails(match: Match, ladder: Ladder, users: dict[str, User]) -> list[Email]:
    """Build one scheduling email per participant."""
    emails = []
    dashboard = get_dashboard_url()
    for uid in match.players:
        user = users.get(uid)
        if not user:
            continue
        team = match.team_of(uid)
        partner = next(p for p in match.team_players(team) if p != uid)
        opponents = [p for p in match.players if match.team_of(p) != team]
        partner_name = users[partner].name if partner in users else partner
        opponent_lines = [
            "- " + (_contact_line(users[o]) if o in users else o) for o in opponents
        ]
        text = (
            f"Hello {user.name},\n\n"
            f"You have a {ladder.name} match scheduled for Week {match.week}!\n\n"
            f"Your partner: {partner_name}\n"
            f"Your opponents:\n" + "\n".join(opponent_lines) + "\n\n"
            "Please coordinate with your opponents to schedule the match. "
            "You can submit scores on your dashboard.\n\n"
            f"Dashboard: {dashboard}\n\n"
            f"Best regards,\n{LEAGUE_NAME} Admin Team"
        )
        emails.append(
            Email(
                to=user.email,
                subject=f"Match Scheduled - Week {match.week} - {LEAGUE_NAME}",
                text=text,
                html="<p>" + text.replace("\n\n", "</p><p>").replace("\n", "<br>") + "</p>",
            )
        )
    return emails


def match_cancelled_emails(match: Match, users: dict[str, User]) -> list[Email]:
    emails = []
    dashboard = get_dashboard_url()
    for uid in match.players:
        user = users.get(uid)
        if not user:
            continue
        team = match.team_of(uid)
        opponents = [
            users[o].name if o in users else o
            for o in match.players
            if match.team_of(o) != team
        ]
        text = (
            f"Hello {user.name},\n\n"
            f"Your match for Week {match.week} against {' & '.join(opponents)} "
            "has been CANCELLED by the admin team.\n\n"
            f"Dashboard: {dashboard}\n\n"
            f"Best regards,\n{LEAGUE_NAME} Admin Team"
        )
        emails.append(
            Email(
                to=user.email,
                subject=f"Match Cancelled - Week {match.week} - {LEAGUE_NAME}",
                text=text,
            )
        )
    return emails


def notify_match_created(match: Match, ladder: Ladder, users: dict[str, User]) -> list[bool]:
    return send_emails(match_created_emails(match, ladder, users))


def notify_match_cancelled(match: Match, users: dict[str, User]) -> list[bool]:
    return send_emails(match_cancelled_emails(match, users))


def notify_member_joined(user: User, ladder: Ladder) -> list[bool]:
    """Tell the league admin address that ``user`` joined ``ladder``."""
    admin_email = get_league_admin_email()
    if not admin_email:
        return []
    text = (
        "A new player has joined one of the ladders.\n\n"
        f"Name: {user.name}\nEmail: {user.email}\nLadder: {ladder.name}\n\n"
        "This is an automated notification. No action required."
    )
    return send_emails(
        [Email(to=admin_email, subject=f"New User Joined Ladder - {ladder.name}", text=text)]
    )
