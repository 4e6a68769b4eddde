#!/usr/bin/env python3
"""Emit deterministic SQL that creates or promotes an Empleos Inclusivos admin account."""

from __future__ import annotations

import argparse
import os

import bcrypt

PASSWORD_ENV = "EI_BOOTSTRAP_ADMIN_PASSWORD"


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def render_sql(
    *,
    email: str,
    password_hash: str | None,
    first_name: str,
    last_name: str,
    actor: str,
) -> str:
    email_value = _quote_sql(email.strip().lower())
    actor_value = _quote_sql(actor)

    if password_hash is None:
        upsert = f"""update users
set user_type = 'admin', account_status = 'active', email_verified_at = coalesce(email_verified_at, now()),
    token_version = token_version + 1, updated_at = now()
where email = {email_value};"""
    else:
        upsert = f"""insert into users (email, password_hash, first_name, last_name, user_type, account_status, email_verified_at)
values ({email_value}, {_quote_sql(password_hash)}, {_quote_sql(first_name)}, {_quote_sql(last_name)}, 'admin', 'active', now())
on conflict (email) do update
set password_hash = excluded.password_hash,
    user_type = 'admin',
    account_status = 'active',
    email_verified_at = coalesce(users.email_verified_at, now()),
    token_version = users.token_version + 1,
    updated_at = now();"""

    return f"""-- Empleos Inclusivos admin bootstrap SQL
-- Run this in a privileged Postgres session after applying db/schema.sql.

{upsert}

insert into admin_audit_logs (admin_id, action_type, entity_type, entity_id, details)
select id, 'bootstrap_admin', 'user', id, jsonb_build_object('email', {email_value}, 'actor', {actor_value})
from users
where email = {email_value};
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to create or promote an admin account.")
    parser.add_argument("--email", required=True, help="Admin account email")
    parser.add_argument("--first-name", default="Admin", help="First name for a newly created account")
    parser.add_argument("--last-name", default="Empleos", help="Last name for a newly created account")
    parser.add_argument(
        "--promote-only",
        action="store_true",
        help="Promote an existing account instead of creating one (no password required)",
    )
    parser.add_argument(
        "--actor",
        default="system",
        help="Actor label recorded in the audit log details",
    )
    args = parser.parse_args()

    password_hash: str | None = None
    if not args.promote_only:
        password = os.getenv(PASSWORD_ENV)
        if not password or len(password) < 8 or len(password.encode("utf-8")) > 72:
            parser.error(f"{PASSWORD_ENV} must hold a password of 8 characters to 72 bytes")
        password_hash = hash_password(password)

    print(
        render_sql(
            email=args.email,
            password_hash=password_hash,
            first_name=args.first_name,
            last_name=args.last_name,
            actor=args.actor,
        )
    )


if __name__ == "__main__":
    main()
