# init_db.py
import os

from sqlalchemy import select

from app.auth import hash_password
from app.database import SessionLocal, engine
from app.models import Base, Service, ServiceCategory, User, UserRole

print("Creating tables (new ones only)...")
Base.metadata.create_all(bind=engine)

DEFAULT_SERVICES = [
    ("Hardware Repair", "Diagnosis and repair of desktops, laptops and peripherals.", ServiceCategory.HARDWARE),
    ("Software Installation", "Installation and configuration of business software.", ServiceCategory.SOFTWARE),
    ("Network Setup", "Office network design, cabling and Wi-Fi configuration.", ServiceCategory.NETWORK),
    ("Security Audit", "Review of endpoints, accounts and firewall rules.", ServiceCategory.SECURITY),
]

db = SessionLocal()
try:
    if db.scalar(select(Service.id).limit(1)) is None:
        print("Seeding default services...")
        for name, description, category in DEFAULT_SERVICES:
            db.add(Service(name=name, description=description, category=category))

    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")
    if admin_email and admin_password:
        if db.scalar(select(User.id).where(User.email == admin_email.lower())) is None:
            print(f"Creating admin {admin_email}...")
            db.add(User(
                email=admin_email.lower(),
                hashed_password=hash_password(admin_password),
                name="Administrator",
                role=UserRole.ADMIN,
                approved=True,
            ))
    db.commit()
except Exception:
    db.rollback()
    raise
finally:
    db.close()

print("Done.")
