import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.orghub.models import Organization, Role, User
from app.orghub.permissions import WILDCARD

SYSTEM_ORG_NAME = "System"
SUPER_ADMIN_ROLE_NAME = "Super Admin"


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _sqlite_fk_on(dbapi_connection, connection_record):  # type: ignore[no-redef]
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the system organization, the Super Admin role and the super-admin user
    in an idempotent way. Does NOT overwrite an existing user's password.
    """
    phone = "".join((os.environ.get("SUPERADMIN_PHONE") or "").split())
    password = os.environ.get("SUPERADMIN_PASSWORD") or ""
    full_name = (os.environ.get("SUPERADMIN_NAME") or "Super Admin").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///orghub.db").strip()

    # Use direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with _session_scope(db_url) as s:
        org = s.query(Organization).filter(Organization.is_system.is_(True)).order_by(Organization.id.asc()).first()
        if not org:
            org = Organization(name=SYSTEM_ORG_NAME, type="system", is_system=True)
            s.add(org)
            s.flush()

        role = (
            s.query(Role)
            .filter(Role.organization_id == org.id, Role.name == SUPER_ADMIN_ROLE_NAME)
            .one_or_none()
        )
        if not role:
            role = Role(
                organization_id=org.id,
                name=SUPER_ADMIN_ROLE_NAME,
                description="Platform operator; acts across every organization",
                permissions=[WILDCARD],
                is_default=False,
            )
            s.add(role)
            s.flush()
        elif WILDCARD not in (role.permissions or []):
            role.permissions = [WILDCARD]

        if not phone:
            print("SUPERADMIN_PHONE not set; skipping super-admin user.")
            return
        if not password:
            raise RuntimeError("SUPERADMIN_PASSWORD is required when SUPERADMIN_PHONE is set.")

        user = s.query(User).filter(User.phone_number == phone).one_or_none()
        if not user:
            user = User(
                organization_id=org.id,
                role_id=role.id,
                full_name=full_name,
                phone_number=phone,
                password_hash=generate_password_hash(password),
            )
            s.add(user)
        elif user.organization_id == org.id and user.role_id != role.id:
            user.role_id = role.id

    print("Initialized database (seed_only).")
    print(f"Super admin phone: {phone}")
    print("Super admin password: (from SUPERADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
