#!/usr/bin/env python
"""Idempotent seed script for the workshop roster and login accounts.

Usage:
    python backend/scripts/seed_demo.py                  # seed normally
    python backend/scripts/seed_demo.py --dry-run        # run logic then rollback (no DB changes)
    python backend/scripts/seed_demo.py --show-accounts  # print accounts after seeding
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select, inspect

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from garage import create_app, get_db  # type: ignore
from garage.constants.roles import Role
from garage.models.authz import AppUser, Base
from garage.models.worker import RepairWorker
from garage.models import audit, repair_order, repair_item  # noqa: F401  register tables

# (name, worker_type)
DEMO_WORKERS = [
    ('Minh', RepairWorker.TYPE_REPAIR),
    ('Tuan', RepairWorker.TYPE_REPAIR),
    ('Hung', RepairWorker.TYPE_PAINT),
    ('Long', RepairWorker.TYPE_PAINT),
]

# (username, display name, role, linked worker name)
DEMO_ACCOUNTS = [
    ('admin', 'Administrator', Role.ADMIN, None),
    ('lead.repair', 'Repair lead', Role.WORKER_LEAD, 'Minh'),
    ('lead.paint', 'Paint lead', Role.PAINT_LEAD, 'Hung'),
    ('tuan', 'Tuan', Role.WORKER, 'Tuan'),
    ('long', 'Long', Role.PAINT, 'Long'),
    ('sales', 'Front desk', Role.SALES, None),
]


def ensure_workers(session):
    existing = {w.name: w for w in session.execute(select(RepairWorker)).scalars().all()}
    created = 0
    for name, worker_type in DEMO_WORKERS:
        if name not in existing:
            w = RepairWorker(name=name, worker_type=worker_type, is_active=True)
            session.add(w)
            existing[name] = w
            created += 1
    session.flush()
    return existing, created


def ensure_accounts(session, workers):
    password = os.getenv('SEED_PASSWORD', 'ChangeMe123!')
    existing = set(session.execute(select(AppUser.username)).scalars().all())
    created = 0
    for username, display_name, role, worker_name in DEMO_ACCOUNTS:
        if username in existing:
            continue
        worker = workers.get(worker_name) if worker_name else None
        user = AppUser(username=username, display_name=display_name, role=role.value,
                       worker_id=worker.id if worker else None, is_active=True)
        user.set_password(password)
        session.add(user)
        created += 1
    session.flush()
    return created


def print_accounts(session):
    rows = session.execute(select(AppUser).order_by(AppUser.id)).scalars().all()
    if not rows:
        print('[INFO] No accounts present.')
        return
    name_w = max(len(u.username) for u in rows)
    print(f"{'Username'.ljust(name_w)} | Role        | Worker")
    print('-' * (name_w + 30))
    for u in rows:
        print(f"{u.username.ljust(name_w)} | {u.role.ljust(11)} | {u.worker_id if u.worker_id is not None else '-'}")


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed repair workers & login accounts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_demo.py\n  dry run: seed_demo.py --dry-run\n""")
    )
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--show-accounts', action='store_true', help='Print login accounts after seeding')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        engine = session.get_bind()
        if not inspect(engine).has_table('repair_workers'):
            # Bootstrap fallback; in a real environment prefer `alembic upgrade head`
            Base.metadata.create_all(engine)

        workers, created_w = ensure_workers(session)
        created_a = ensure_accounts(session, workers)
        if args.show_accounts:
            print_accounts(session)
        if args.dry_run:
            session.rollback()
            print(f"[DRY-RUN] (rolled back) Workers would create: {created_w}, Accounts would create: {created_a}")
        else:
            session.commit()
            print(f"[DONE] Workers created: {created_w}, Accounts created: {created_a}")


if __name__ == '__main__':
    main()
