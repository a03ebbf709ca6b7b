# Storefront maintenance commands.
#
# - storefront seed [--force]
#   Insert the demo catalog when the products collection is empty
#   (--force wipes existing products first).
# - storefront create-admin --email admin@example.com --password "..."
#   Create an admin account, or promote an existing account to admin.
# - storefront init-db
#   Create indexes and default categories.

import click

from catalog import CatalogService
from config import get_settings
from database import Database, utcnow
from log import configure_logging
from schemas import AdminUserCreate
from security import TokenIssuer
from users import UserService


def _connect() -> Database:
    configure_logging()
    return Database.from_settings(get_settings()).connect()


@click.group()
def cli():
    """Storefront bootstrap and maintenance commands."""


@cli.command("init-db")
def init_db():
    """Create indexes and default categories."""
    database = _connect()
    try:
        click.echo(f"Initialized database {database.name}")
    finally:
        database.close()


@cli.command("seed")
@click.option("--force", is_flag=True, help="Replace existing products.")
def seed(force):
    """Insert the demo product catalog."""
    database = _connect()
    try:
        inserted = CatalogService(database).seed_products(force=force)
    finally:
        database.close()
    if inserted:
        click.echo(f"Inserted {inserted} products")
    else:
        click.echo("Products already exist; use --force to replace them")


@cli.command("create-admin")
@click.option("--email", prompt=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--first-name", default="Admin")
@click.option("--last-name", default="")
def create_admin(email, password, first_name, last_name):
    """Create an admin account or promote an existing one."""
    settings = get_settings()
    database = _connect()
    try:
        existing = database["users"].find_one({"email": email})
        if existing:
            database["users"].update_one({"_id": existing["_id"]}, {"$set": {"role": "admin", "updatedAt": utcnow()}})
            click.echo(f"Promoted {email} to admin")
            return
        users = UserService(database, TokenIssuer(settings.jwt_secret, settings.jwt_algorithm))
        user = users.create_user(
            AdminUserCreate(email=email, password=password, first_name=first_name, last_name=last_name, role="admin")
        )
        click.echo(f"Created admin {user['email']} ({user['id']})")
    finally:
        database.close()


if __name__ == "__main__":
    cli()
