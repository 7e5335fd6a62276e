"""
Bootstrap script — create the first super admin and the first site.

Usage:
    alembic upgrade head
    python scripts/bootstrap.py

Prompts for the admin's name and email, then the site name and letter.
Idempotent — safe to re-run; skips records that already exist.
Both writes are audited: the user as a System CREATE, the site as a CREATE
by the new admin.
"""

import sys
import os

# Ensure the project root is on the path when run directly
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select

from procurement.database import SessionLocal, transaction
from procurement.errors import ProcurementError
from procurement.models.audit import AuditAction, TrackedTable
from procurement.models.reference import Site
from procurement.models.user import User, UserRole
from procurement.schemas.reference import SiteIn
from procurement.services import reference_data
from procurement.services.audit import ledger
from procurement.services.audit.ledger import Actor


def prompt(label: str, default: str = "") -> str:
    suffix = f" [{default}]" if default else ""
    value = input(f"{label}{suffix}: ").strip()
    return value or default


def main() -> None:
    print("\n=== Procurement — Bootstrap ===\n")

    # ── Admin user ────────────────────────────────────────────────────────────
    print("── Super admin ──────────────────────────")
    admin_email = prompt("Email").lower()
    if not admin_email:
        print("ERROR: email is required.")
        sys.exit(1)
    first_name = prompt("First name", "Site")
    last_name = prompt("Last name", "Administrator")

    # ── First site ────────────────────────────────────────────────────────────
    print("\n── First site ───────────────────────────")
    try:
        site_in = SiteIn(
            name=prompt("Site name", "Head Office"),
            site_letter=prompt("Site letter (A-Z)", "A"),
        )
    except SchemaValidationError as e:
        print(f"ERROR: {e.errors()[0]['msg']}")
        sys.exit(1)

    # ── Write to DB ───────────────────────────────────────────────────────────
    db = SessionLocal()
    try:
        user = db.scalar(select(User).where(User.email == admin_email))
        if user:
            print(f"\n✓ User '{admin_email}' already exists (role={user.role}) — skipping.")
        else:
            with transaction(db):
                user = User(
                    email=admin_email,
                    first_name=first_name,
                    last_name=last_name,
                    role=UserRole.SUPER_ADMIN,
                    active=True,
                )
                db.add(user)
                db.flush()
                ledger.record(
                    db,
                    TrackedTable.USERS,
                    user.id,
                    AuditAction.CREATE,
                    old_values=None,
                    new_values=ledger.snapshot(user),
                    actor=Actor.system("Bootstrap"),
                )
            print(f"\n✓ Super admin '{admin_email}' created (id={user.id})")

        site = db.scalar(select(Site).where(Site.site_letter == site_in.site_letter))
        if site:
            print(f"✓ Site letter '{site.site_letter}' already used by '{site.name}' — skipping.")
        else:
            actor = Actor(id=user.id, name=user.full_name, role=user.role)
            site = reference_data.create_reference(db, "site", site_in, actor)
            print(f"✓ Site '{site.name}' ({site.site_letter}) created (id={site.id})")

        print("\n✅ Bootstrap complete. Send X-User-Id: %s from the gateway.\n" % user.id)

    except ProcurementError as e:
        print(f"\nERROR: {e.kind} — {e.message}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
