# Overview: Flask CLI command groups for bootstrap, stock inspection and user management.

# backend/cascos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, seeds the stock catalog and the shared UI login.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock:
# - python -m flask stock list
#   Print every stock row with its quantity on hand.
# - python -m flask stock set vasilhame_ambev 120
#   Administrative correction of one stock row.
#
# Users:
# - python -m flask users create --name junior --password "..."
#   Create another shared UI login.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services import auth_service, stock_service
from .validation import ConflictError, NotFoundError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the ledger: tables, stock catalog rows, and the initial UI login.

    The initial credentials come from INITIAL_USER / INITIAL_PASSWORD.
    """
    click.echo("START Initializing cascos ledger...")

    db.create_all()
    click.echo("PASS Tables verified/created")

    created = stock_service.seed_stock_items()
    click.echo(f"PASS Stock catalog seeded ({created} new item(s))")

    name = current_app.config["INITIAL_USER"]
    if auth_service.ensure_initial_user(name, current_app.config["INITIAL_PASSWORD"]):
        click.echo(f"PASS Created initial user '{name}'")
        click.echo("WARN  Change the initial password before going live!")
    else:
        click.echo(f"PASS Initial user '{name}' already exists")

    click.echo("DONE Ledger initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    stock_service.seed_stock_items()
    click.echo("DONE Database reset; stock catalog re-seeded with zero quantities")


@click.group('stock')
def stock_group():
    """Stock inspection and correction commands."""


@stock_group.command('list')
@with_appcontext
def list_stock():
    for item in stock_service.list_all():
        click.echo(f"{item.item_id:<28} {item.quantity:>8}  {item.display_name}")


@stock_group.command('set')
@click.argument('item_id')
@click.argument('quantity', type=int)
@with_appcontext
def set_stock(item_id, quantity):
    try:
        item = stock_service.set_absolute(item_id, quantity)
    except (NotFoundError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS {item.item_id} = {item.quantity}")


@click.group('users')
def users_group():
    """Shared UI login management."""


@users_group.command('create')
@click.option('--name', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user(name, password):
    try:
        auth_service.create_user(name, password)
    except (ConflictError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created user '{name}'")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(users_group)
