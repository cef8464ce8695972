from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import Base, Lead, LeadStatus, User, UserRole
from app.security.passwords import hash_password


def make_session_factory() -> sessionmaker:
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        # pysqlite's own BEGIN handling breaks SAVEPOINT; SQLAlchemy emits BEGIN itself below.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    @event.listens_for(engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN')

    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def as_naive_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out.
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def add_user(
    db: Session,
    *,
    email: str,
    role: UserRole = UserRole.USER,
    password: str | None = None,
) -> User:
    user = User(
        email=email,
        name=email.split('@')[0],
        password_hash=hash_password(password) if password else 'unused',
        role=role,
        active=True,
    )
    db.add(user)
    db.flush()
    return user


def add_lead(db: Session, *, client_id: str | None = None, status: LeadStatus = LeadStatus.NEW) -> Lead:
    lead = Lead(
        name='Ada Client',
        email='ada@example.com',
        phone='+15550100',
        origin_country='US',
        destination_country='GB',
        parcel_type='Documents',
        weight=Decimal('2.50'),
        notes='',
        status=status,
        client_id=client_id,
    )
    db.add(lead)
    db.flush()
    return lead
