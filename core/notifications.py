# core/notifications.py
import requests
import smtplib
from datetime import datetime, timezone
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Iterable, List, Optional
from core.config import settings
from core.logging_config import logger
from models.notification import DispatchReport, NotificationRequest


# -----------------------------------------------------
# 📧 Send email (SMTP)
# -----------------------------------------------------
def send_email(
    subject: str,
    body: str,
    to: str = None,
    recipients: Optional[List[str]] = None,
    html_body: Optional[str] = None
):
    """
    Send email via SMTP.

    Args:
        subject: Email subject
        body: Plain text email body
        to: Single recipient email
        recipients: List of recipient email addresses
        html_body: Optional HTML email body
    """
    smtp_host = settings.SMTP_HOST
    smtp_port = settings.SMTP_PORT
    smtp_user = settings.SMTP_USER
    smtp_pass = settings.SMTP_PASS

    recipient_list = recipients or ([to] if to else [])

    if not recipient_list:
        logger.warning("No recipients specified — skipping email.")
        return

    if not all([smtp_host, smtp_port, smtp_user, smtp_pass]):
        logger.warning("Email credentials missing — skipping email.")
        return

    try:
        msg = MIMEMultipart('alternative')
        msg["From"] = smtp_user
        msg["To"] = ", ".join(recipient_list)
        msg["Subject"] = subject

        msg.attach(MIMEText(body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP_SSL(smtp_host, smtp_port) as server:
            server.login(smtp_user, smtp_pass)
            server.send_message(msg)

        logger.info(f"Email sent to {', '.join(recipient_list)}")

    except Exception as e:
        logger.error(f"Email failed: {e}")
        raise


# -----------------------------------------------------
# 📱 Push endpoint registry (push_endpoints table)
# -----------------------------------------------------
class PushRegistry:
    def __init__(self, client):
        self.client = client

    def register(self, user_id: str, token: str) -> dict:
        existing = (
            self.client.table("push_endpoints")
            .select("*")
            .eq("user_id", user_id)
            .eq("token", token)
            .limit(1)
            .execute()
        ).data

        now = datetime.now(timezone.utc).isoformat()
        if existing:
            row = (
                self.client.table("push_endpoints")
                .update({"invalid": False, "last_used_at": now})
                .eq("id", existing[0]["id"])
                .execute()
            ).data
            return row[0] if row else existing[0]

        row = (
            self.client.table("push_endpoints")
            .insert({
                "user_id": user_id,
                "token": token,
                "invalid": False,
                "created_at": now,
                "last_used_at": now,
            })
            .execute()
        ).data
        logger.info(f"Push endpoint registered for user {user_id}")
        return row[0] if row else {}

    def remove(self, user_id: str, token: str) -> int:
        removed = (
            self.client.table("push_endpoints")
            .delete()
            .eq("user_id", user_id)
            .eq("token", token)
            .execute()
        ).data or []
        return len(removed)

    def endpoints_for(self, user_ids: Iterable[str]) -> List[str]:
        """Valid tokens of the given users, deduplicated, in first-seen order."""
        user_ids = list(dict.fromkeys(u for u in user_ids if u))
        if not user_ids:
            return []

        rows = (
            self.client.table("push_endpoints")
            .select("token, invalid")
            .in_("user_id", user_ids)
            .execute()
        ).data or []

        return list(dict.fromkeys(r["token"] for r in rows if r.get("token") and not r.get("invalid")))

    def flag_invalid(self, tokens: Iterable[str]):
        tokens = list(tokens)
        if not tokens:
            return
        self.client.table("push_endpoints").update({"invalid": True}).in_("token", tokens).execute()
        logger.info(f"Flagged {len(tokens)} push endpoint(s) as invalid")

    def prune_invalid(self) -> int:
        removed = (
            self.client.table("push_endpoints")
            .delete()
            .eq("invalid", True)
            .execute()
        ).data or []
        logger.info(f"Pruned {len(removed)} invalid push endpoint(s)")
        return len(removed)


# -----------------------------------------------------
# 👥 Role → users lookup
# -----------------------------------------------------
def users_with_roles(client, site_id: str, roles: Iterable[str]) -> List[str]:
    roles = [str(r) for r in roles]
    if not roles:
        return []

    rows = (
        client.table("users")
        .select("id, status")
        .in_("role", roles)
        .contains("sites", [site_id])
        .execute()
    ).data or []

    return [r["id"] for r in rows if r.get("status") != "DISABLED"]


# -----------------------------------------------------
# 🔔 Fan-out
# -----------------------------------------------------
PERMANENT_PUSH_ERRORS = {"NotRegistered", "InvalidRegistration", "MismatchSenderId"}


class NotificationFanout:
    """
    Best-effort push delivery. One endpoint's failure never blocks the
    others and nothing is raised to the caller.
    """

    def __init__(
        self,
        client,
        gateway_url: Optional[str] = None,
        server_key: Optional[str] = None,
        timeout: Optional[float] = None,
        session=None,
    ):
        self.registry = PushRegistry(client)
        self.gateway_url = gateway_url if gateway_url is not None else settings.PUSH_GATEWAY_URL
        self.server_key = server_key if server_key is not None else settings.PUSH_SERVER_KEY
        self.timeout = timeout if timeout is not None else settings.PUSH_TIMEOUT_SECONDS
        self.session = session or requests

    def _push(self, token: str, title: str, body: str, url: Optional[str]) -> Optional[str]:
        """
        Deliver to one endpoint. Returns None on success, "invalid" when the
        gateway says the endpoint is gone, or "failed".
        """
        headers = {"Content-Type": "application/json"}
        if self.server_key:
            headers["Authorization"] = f"key={self.server_key}"

        payload = {
            "to": token,
            "notification": {"title": title, "body": body},
            "data": {"url": url or "/"},
        }

        try:
            response = self.session.post(self.gateway_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Push to endpoint {token[:12]}… failed: {e}")
            return "failed"

        if response.status_code in (404, 410):
            return "invalid"
        if response.status_code >= 400:
            logger.warning(f"Push gateway answered {response.status_code} for endpoint {token[:12]}…")
            return "failed"

        try:
            results = response.json().get("results") or []
        except ValueError:
            results = []

        error = results[0].get("error") if results else None
        if error in PERMANENT_PUSH_ERRORS:
            return "invalid"
        if error:
            logger.warning(f"Push gateway error for endpoint {token[:12]}…: {error}")
            return "failed"
        return None

    def send(self, user_ids: Iterable[str], title: str, body: str, url: Optional[str] = None) -> DispatchReport:
        report = DispatchReport()

        try:
            tokens = self.registry.endpoints_for(user_ids)
        except Exception as e:
            logger.error(f"Could not resolve push endpoints: {e}")
            return report

        if not tokens:
            logger.info("No push endpoints for recipients — nothing to send")
            return report

        if not self.gateway_url:
            logger.warning("Push gateway not configured — skipping push.")
            report.failure_count = len(tokens)
            return report

        for token in tokens:
            outcome = self._push(token, title, body, url)
            if outcome is None:
                report.success_count += 1
                continue
            report.failure_count += 1
            if outcome == "invalid":
                report.invalid_endpoints.append(token)

        if report.invalid_endpoints:
            try:
                self.registry.flag_invalid(report.invalid_endpoints)
            except Exception as e:
                logger.warning(f"Could not flag invalid push endpoints: {e}")

        logger.info(
            f"Push '{title}': {report.success_count} delivered, {report.failure_count} failed"
        )
        return report


def dispatch_notification(fanout: NotificationFanout, client, request: Optional[NotificationRequest]) -> DispatchReport:
    """
    Resolve a workflow notification to users and send it. Runs after the
    response; failures are logged and reported, never raised.
    """
    if request is None:
        return DispatchReport()

    try:
        recipients = list(request.recipient_user_ids)
        if request.recipient_roles:
            recipients += users_with_roles(client, request.site_id, request.recipient_roles)
        return fanout.send(recipients, request.title, request.body, request.url)
    except Exception as e:
        logger.error(f"Notification '{request.title}' could not be dispatched: {e}")
        return DispatchReport()
