"""
Seed employee reference rows for local development.

Credentials live with the identity service; this only creates the rows that
leave, attendance and payroll records point at, and prints a development
token for each.
"""
from app.core.config import settings
from app.core.security import create_access_token
from app.database import Database
from app.models.user import User, UserRole

SEED_USERS = [
    ("admin@example.com", "Ada Admin", UserRole.ADMIN),
    ("hr@example.com", "Hana HR", UserRole.HR),
    ("employee@example.com", "Eve Employee", UserRole.EMPLOYEE),
]


def create_user(db, email, full_name, role):
    # Check if user already exists to avoid unique constraint errors
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        print(f"User {email} already exists. Skipping.")
        return existing_user

    user = User(email=email, full_name=full_name, role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    print(f"Created {role.value} -> {email}")
    return user


def main():
    database = Database(settings.database_url).open()
    database.create_all()
    try:
        with database.session() as db:
            for email, full_name, role in SEED_USERS:
                user = create_user(db, email, full_name, role)
                token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
                print(f"  token for {email}: {token}")
    finally:
        database.close()


if __name__ == "__main__":
    main()
