"""Interactive console for the family access service."""

import logging
import shlex
import sys
from dataclasses import dataclass

from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table

from family_access import config
from family_access.app import FamilyAccessApp
from family_access.errors import AuthorizationError, FamilyAccessError, NotFoundError
from family_access.identity import AccountRole, Actor
from family_access.notifier import InvitationNotifier
from family_access.permissions import role_label
from family_access.projector import HealthSnapshot

console = Console()

HELP = """
**Commands**

- `login ACCOUNT_ID EMAIL [patient|doctor|health_worker]`
- `invite EMAIL ROLE NAME [CUSTOM_ROLE]` (quote names with spaces)
- `members` / `resend MEMBER_ID` / `remove MEMBER_ID`
- `pending` / `accept TOKEN` / `reject TOKEN`
- `patients` / `view PATIENT_ID`
- `health MEMBER_ID`
- `help` / `quit`
"""


@dataclass
class ConsoleSession:
    """Who is driving the console."""
    actor: Actor | None = None

    def require_actor(self) -> Actor:
        if self.actor is None:
            raise FamilyAccessError("Log in first: login ACCOUNT_ID EMAIL")
        return self.actor


def handle_login(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """Set the current actor."""
    if len(args) < 2:
        return "Usage: login ACCOUNT_ID EMAIL [role]"
    try:
        role = AccountRole(args[2].lower()) if len(args) > 2 else AccountRole.PATIENT
    except ValueError:
        return f"Unknown account role '{args[2]}'. Use patient, doctor or health_worker."
    session.actor = Actor(account_id=args[0], email=args[1].lower(), role=role)
    pending = app.invitations.list_pending_for_email(session.actor.email)
    message = f"Logged in as **{session.actor.account_id}** ({role.value})."
    if pending:
        message += f" You have {len(pending)} pending family invitation(s); type `pending`."
    return Markdown(message)


def handle_invite(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """Invite a family member."""
    actor = session.require_actor()
    if len(args) < 3:
        return "Usage: invite EMAIL ROLE NAME [CUSTOM_ROLE]"
    email, role, name = args[0], args[1], args[2]
    custom_role = args[3] if len(args) > 3 else None
    member_id = app.invitations.invite(actor.account_id, name, email, role, custom_role)
    return f"Invitation sent to {email.lower()} (member id {member_id})."


def handle_members(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """List the family members the current patient invited."""
    actor = session.require_actor()
    members = app.invitations.list_for_patient(actor.account_id)
    if not members:
        return "No family members yet."

    table = Table(title="Family members")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("Role")
    table.add_column("Status")
    table.add_column("Invited")
    for member in members:
        table.add_row(
            member.id, member.name, member.email,
            role_label(member.role, member.custom_role),
            member.invite_status.value, member.invited_at or "",
        )
    return table


def handle_pending(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """List invitations addressed to the current actor."""
    actor = session.require_actor()
    invitations = app.invitations.list_pending_for_email(actor.email)
    if not invitations:
        return "No pending invitations."

    table = Table(title="Pending invitations")
    table.add_column("From patient")
    table.add_column("Role")
    table.add_column("Token", style="dim")
    for invitation in invitations:
        table.add_row(
            invitation.added_by,
            role_label(invitation.role, invitation.custom_role),
            invitation.invite_token,
        )
    return table


def handle_accept(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """Accept an invitation as the current actor."""
    actor = session.require_actor()
    if not args:
        return "Usage: accept TOKEN"
    relationship = app.invitations.accept(args[0], actor.account_id)
    return f"You can now view health data for patient {relationship.patient_uid}."


def handle_reject(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """Decline an invitation."""
    session.require_actor()
    if not args:
        return "Usage: reject TOKEN"
    app.invitations.reject(args[0])
    return "Invitation declined."


def handle_remove(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """Remove a family member and revoke their access."""
    actor = session.require_actor()
    if not args:
        return "Usage: remove MEMBER_ID"
    app.invitations.remove(actor.account_id, args[0])
    return "Family member removed and access revoked."


def handle_resend(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """Deliver a pending invitation again."""
    actor = session.require_actor()
    if not args:
        return "Usage: resend MEMBER_ID"
    app.invitations.resend(actor.account_id, args[0])
    return "Invitation resent."


def handle_patients(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """List patients who granted the current actor access."""
    actor = session.require_actor()
    relationships = app.directory.relationships_for(actor.account_id)
    if not relationships:
        return "No patients have shared their health data with you."

    table = Table(title="Patients you can view")
    table.add_column("Patient")
    table.add_column("Your role")
    table.add_column("Access")
    for relationship in relationships:
        granted = [
            name.removeprefix("can_view_").replace("_", " ")
            for name, allowed in relationship.access_permissions.to_dict().items() if allowed
        ]
        table.add_row(
            relationship.patient_uid,
            role_label(relationship.role, relationship.custom_role),
            ", ".join(granted),
        )
    return table


def handle_view(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """Show a patient's data as the current family member."""
    actor = session.require_actor()
    if not args:
        return "Usage: view PATIENT_ID"
    snapshot = app.projector.get_patient_view(actor.account_id, args[0])
    if snapshot is None:
        return "You don't have permission to view this patient's information."
    return render_snapshot(snapshot)


def handle_health(app: FamilyAccessApp, session: ConsoleSession, args: list[str]):
    """Show the health data behind one of the current patient's family members."""
    actor = session.require_actor()
    if not args:
        return "Usage: health MEMBER_ID"
    member = app.family_repository.get_by_id(args[0])
    if member is None:
        raise NotFoundError("Family member not found")
    if member.added_by != actor.account_id:
        raise AuthorizationError("Unauthorized to view this family member")
    snapshot = app.projector.get_family_member_health(args[0])
    if snapshot is None:
        return "No health data available for this family member yet."
    return render_snapshot(snapshot)


def render_snapshot(snapshot: HealthSnapshot) -> Markdown:
    """Format a health snapshot as markdown."""
    lines = [f"### Health data for {snapshot.user_id}"]
    if snapshot.vitals:
        vitals = snapshot.vitals
        lines.append(
            f"- **Vitals:** heart rate {vitals.heart_rate} bpm, SpO2 {vitals.oxygen_saturation}%, "
            f"{vitals.steps} steps (updated {vitals.last_updated or 'unknown'})"
        )
    for prescription in snapshot.prescriptions:
        names = ", ".join(f"{m.name} {m.dosage}".strip() for m in prescription.medications)
        lines.append(f"- **Prescription** ({prescription.saved_at}): {names or 'no medications'}")
    for report in snapshot.reports:
        flag = " (urgent)" if report.urgent else ""
        lines.append(f"- **{report.title}** [{report.type}] {report.date or 'Date not specified'}{flag}")
    if not snapshot.has_any_data:
        lines.append("No health data available.")
    if snapshot.failed_categories:
        lines.append(f"_Could not load: {', '.join(snapshot.failed_categories)}_")
    return Markdown("\n".join(lines))


COMMAND_HANDLERS = {
    "login": handle_login,
    "invite": handle_invite,
    "members": handle_members,
    "pending": handle_pending,
    "accept": handle_accept,
    "reject": handle_reject,
    "remove": handle_remove,
    "resend": handle_resend,
    "patients": handle_patients,
    "view": handle_view,
    "health": handle_health,
}


def process_command(app: FamilyAccessApp, session: ConsoleSession, line: str):
    """Parse one console line and return something rich can print."""
    try:
        parts = shlex.split(line)
    except ValueError as e:
        return f"Could not parse command: {e}"
    if not parts:
        return ""

    command, args = parts[0].lower(), parts[1:]
    if command == "help":
        return Markdown(HELP)
    handler = COMMAND_HANDLERS.get(command)
    if handler is None:
        return f"Unknown command '{command}'. Type 'help' for the list."
    return handler(app, session, args)


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def main():
    """Main console loop."""
    configure_logging()
    notifier = InvitationNotifier() if config.INVITE_WEBHOOK_URL else None
    app = FamilyAccessApp(notifier=notifier).start()
    session = ConsoleSession()

    console.print("[bold blue]Family access console[/bold blue]")
    console.print("Type 'help' for commands, 'quit' or 'exit' to leave.\n")

    is_tty = sys.stdin.isatty()

    try:
        while True:
            try:
                line = console.input("[bold green]>[/bold green] ").strip()
                # Echo input when stdin is piped (not interactive)
                if not is_tty and line:
                    console.print(f"[dim]{line}[/dim]")
            except (EOFError, KeyboardInterrupt):
                console.print("\n[bold blue]Goodbye![/bold blue]")
                break

            if not line:
                continue
            if line.lower() in ("quit", "exit"):
                console.print("[bold blue]Goodbye![/bold blue]")
                break

            try:
                console.print(process_command(app, session, line), "\n")
            except FamilyAccessError as e:
                console.print(f"[bold red]Error:[/bold red] {e}\n")
    finally:
        app.stop()


if __name__ == "__main__":
    main()
