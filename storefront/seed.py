"""
Bootstrap the storefront database
- Creates any missing tables
- Adds the 'Administrador' and 'Cliente' roles when missing
- Optionally creates an admin user

Usage:
  python -m storefront.seed --db sqlite:///./storefront.db [--admin-email E --admin-password P]
"""
import argparse
import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from . import auth, models
from .db import Base, enable_sqlite_foreign_keys

log = logging.getLogger(__name__)

DEFAULT_ROLES = (auth.RoleName.ADMIN.value, auth.RoleName.CLIENT.value)


def seed(db: Session, admin_email: Optional[str] = None, admin_password: Optional[str] = None) -> dict:
    """Insert the default roles (and admin user) if they are not there yet.

    Returns the role ids by name. Running it twice changes nothing.
    """
    roles = {}
    for name in DEFAULT_ROLES:
        role = db.query(models.Role).filter(models.Role.name == name).first()
        if not role:
            role = models.Role(name=name)
            db.add(role)
            db.flush()
            log.info("created role %s", name)
        roles[name] = role.id

    if admin_email:
        if not admin_password:
            raise ValueError("admin password required")
        existing = db.query(models.User).filter(models.User.email == admin_email).first()
        if not existing:
            db.add(
                models.User(
                    first_name="Admin",
                    last_name="Storefront",
                    email=admin_email,
                    password_hash=auth.hash_password(admin_password),
                    role_id=roles[auth.RoleName.ADMIN.value],
                )
            )
            log.info("created admin user %s", admin_email)
    db.commit()
    return roles


def run(database_url: str, admin_email: Optional[str] = None, admin_password: Optional[str] = None) -> dict:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, connect_args=connect_args, future=True)
    if database_url.startswith("sqlite"):
        enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, future=True)()
    try:
        return seed(session, admin_email, admin_password)
    finally:
        session.close()
        engine.dispose()


def main():
    from .config import get_settings

    parser = argparse.ArgumentParser()
    parser.add_argument("--db", default=get_settings().database_url, help="SQLAlchemy database URL")
    parser.add_argument("--admin-email")
    parser.add_argument("--admin-password")
    args = parser.parse_args()
    logging.basicConfig(level=get_settings().log_level)
    run(args.db, args.admin_email, args.admin_password)


if __name__ == "__main__":
    main()
