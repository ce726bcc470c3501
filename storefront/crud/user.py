# storefront/crud/user.py
from sqlalchemy.orm import Session
from storefront.models.user import User


def get_user_by_id(db: Session, user_id: int) -> User | None:
    """Gets a user by primary key."""
    return db.query(User).filter(User.id == user_id).first()

def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email.lower()).first()

def get_user_for_update(db: Session, user_id: int) -> User | None:
    """
    Reads the user row fresh from the database and locks it (SELECT ... FOR UPDATE)
    until the surrounding transaction ends. Every balance mutation goes through here.
    """
    return db.query(User).filter(User.id == user_id).populate_existing().with_for_update().first()

def create_user(db: Session, email: str, name: str | None = None) -> User:
    """Creates a user with an empty balance. Balances only grow via the ledger."""
    db_user = User(email=email.lower(), name=name, loyalty_points=0)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user
