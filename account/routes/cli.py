from __future__ import annotations
from datetime import datetime, timezone
import click
from extensions import db
from plans.catalog import Tier
from .. import account_bp


@account_bp.cli.command("set-tier")
@click.argument("email")
@click.argument("tier", type=click.Choice([t.value for t in Tier]))
@click.option("--until", "until", default=None, help="Subscription end date, YYYY-MM-DD (UTC)")
@click.option("--status", "status", default="active", show_default=True)
def set_tier(email: str, tier: str, until: str | None, status: str):
    """
    Change a user's subscription tier.
    Usage:
        flask account set-tier someone@example.com pro
        flask account set-tier someone@example.com pro --until 2026-12-31
    """
    from auth.models import User

    user = User.query.filter_by(email=User.normalize_email(email)).first()
    if not user or not user.profile:
        raise click.ClickException(f"No profile for {email}")

    end = None
    if until:
        try:
            end = datetime.strptime(until, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        except ValueError:
            raise click.BadParameter("expected YYYY-MM-DD", param_hint="--until")

    prof = user.profile
    prof.subscription_tier = tier
    prof.subscription_status = status
    prof.subscription_end = end
    db.session.commit()
    click.echo(f"{user.email}: tier={tier} status={status} until={end.date().isoformat() if end else '-'}")
