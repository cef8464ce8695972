from decimal import Decimal

from sqlalchemy import select

from app.db import SessionLocal, engine
from app.models import Base, Lead, LeadStatus, User, UserRole
from app.security.passwords import hash_password


def _get_or_create_user(db, *, email: str, name: str, password: str, role: UserRole) -> User:
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user:
        return user
    user = User(email=email, name=name, password_hash=hash_password(password), role=role, active=True)
    db.add(user)
    db.flush()
    return user


def seed() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        _get_or_create_user(db, email='admin@example.com', name='Admin', password='adminpass', role=UserRole.ADMIN)
        client = _get_or_create_user(
            db, email='client@example.com', name='Demo Client', password='clientpass', role=UserRole.USER
        )

        existing = db.execute(select(Lead.id).where(Lead.client_id == client.id)).first()
        if not existing:
            db.add(
                Lead(
                    name='Demo Client',
                    email='client@example.com',
                    phone='+15550100',
                    origin_country='US',
                    destination_country='DE',
                    parcel_type='Documents',
                    weight=Decimal('1.50'),
                    notes='Seeded lead, ready for conversion.',
                    status=LeadStatus.QUALIFIED,
                    client_id=client.id,
                )
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
