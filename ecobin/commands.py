# ecobin/commands.py
"""
Operator shell commands, registered on the Flask CLI:

    flask create-user --email ops@ecobin.local --role operator --name "Ops" --password ...
    flask seed-bins --type recyclable --count 5
"""

from __future__ import annotations

import click
from flask import Flask
from flask.cli import with_appcontext

from .constants import BIN_TYPES, ROLES
from .extensions import db
from .models import User
from .services.smart_bins import create_inventory_bin
from .services.transitions import commit_or_rollback
from .utils.passwords import hash_password, validate_password


@click.command("create-user")
@with_appcontext
@click.option("--email", required=True)
@click.option("--name", required=True)
@click.option("--role", type=click.Choice(sorted(ROLES)), default="resident", show_default=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--phone", default=None)
@click.option("--address", default=None)
def create_user_command(email, name, role, password, phone, address):
    """Create a user account."""
    email = email.strip().lower()
    if User.query.filter(db.func.lower(User.email) == email).first():
        raise click.ClickException(f"A user with email {email} already exists")

    valid, msg = validate_password(password)
    if not valid:
        raise click.ClickException(msg)

    user = User(
        name=name.strip(),
        email=email,
        phone=phone,
        address=address,
        role=role,
        is_active=True,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    commit_or_rollback("User creation")
    click.echo(f"Created {role} {email} (id={user.id})")


@click.command("seed-bins")
@with_appcontext
@click.option("--type", "bin_type", type=click.Choice(BIN_TYPES), required=True)
@click.option("--count", type=click.IntRange(1, 500), default=1, show_default=True)
@click.option("--created-by", "created_by", type=int, required=True, help="Id of the staff user adding stock.")
@click.option("--address", default=None)
def seed_bins_command(bin_type, count, created_by, address):
    """Add available bins of one type to the inventory."""
    actor = db.session.get(User, created_by)
    if actor is None:
        raise click.ClickException(f"User {created_by} not found")

    codes = []
    for _ in range(count):
        smart_bin = create_inventory_bin(actor, bin_type=bin_type, address=address)
        codes.append(smart_bin.bin_code)
    commit_or_rollback("Bin seeding")

    click.echo(f"Added {len(codes)} {bin_type} bin(s): {', '.join(codes)}")


def register_commands(app: Flask) -> None:
    app.cli.add_command(create_user_command)
    app.cli.add_command(seed_bins_command)
