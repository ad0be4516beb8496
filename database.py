# database.py
import logging
from datetime import datetime, timezone

from sqlalchemy import (create_engine, Column, Integer, String, Text, Numeric,
                        Boolean, DateTime, ForeignKey, JSON, Enum, or_)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from werkzeug.security import generate_password_hash, check_password_hash

from aggregation import Scope
from config import SETTINGS

logger = logging.getLogger("carbon.database")

engine = create_engine(SETTINGS["database"]["url"], echo=SETTINGS["database"].get("echo", False))
Session = sessionmaker(bind=engine, expire_on_commit=False)
Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id         = Column(Integer, primary_key=True)
    username   = Column(String, unique=True, nullable=False)
    email      = Column(String, unique=True, nullable=False)
    password   = Column(String, nullable=False)  # werkzeug hash
    first_name = Column(String)
    last_name  = Column(String)
    avatar_url = Column(String)
    language   = Column(String, default="en")
    role       = Column(String, default="user", nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id"))
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    company = relationship("Company", back_populates="users")


class Company(Base):
    __tablename__ = "companies"
    id         = Column(Integer, primary_key=True)
    name       = Column(String, nullable=False)
    industry   = Column(String)
    address    = Column(String)
    city       = Column(String)
    country    = Column(String)
    size       = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    users         = relationship("User", back_populates="company")
    emissions     = relationship("Emission", back_populates="company")
    reports       = relationship("Report", back_populates="company")
    subscriptions = relationship("Subscription", back_populates="company")


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"
    id          = Column(Integer, primary_key=True)
    name        = Column(String, nullable=False)
    description = Column(Text)
    price       = Column(Numeric(10, 2), nullable=False)
    features    = Column(JSON, default=list)
    created_at  = Column(DateTime, default=utcnow, nullable=False)


class Subscription(Base):
    __tablename__ = "subscriptions"
    id         = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    plan_id    = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date   = Column(DateTime)
    status     = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    company = relationship("Company", back_populates="subscriptions")
    plan    = relationship("SubscriptionPlan")


class EmissionCategory(Base):
    __tablename__ = "emission_categories"
    id          = Column(Integer, primary_key=True)
    name        = Column(String, nullable=False)
    # stored as "Scope 1" / "Scope 2" / "Scope 3"
    scope       = Column(Enum(Scope, native_enum=False, validate_strings=True,
                              values_callable=lambda members: [m.value for m in members]),
                         nullable=False)
    description = Column(Text)
    icon        = Column(String)
    created_at  = Column(DateTime, default=utcnow, nullable=False)

    emissions = relationship("Emission", back_populates="category")


class Emission(Base):
    __tablename__ = "emissions"
    id           = Column(Integer, primary_key=True)
    company_id   = Column(Integer, ForeignKey("companies.id"), nullable=False)
    category_id  = Column(Integer, ForeignKey("emission_categories.id"), nullable=False)
    description  = Column(Text)
    amount       = Column(Numeric(10, 2), nullable=False)
    unit         = Column(String, default="tCO2e", nullable=False)
    date         = Column(DateTime, nullable=False)
    document_url = Column(String)
    verified     = Column(Boolean, default=False, nullable=False)
    verified_by  = Column(Integer, ForeignKey("users.id"))
    created_by   = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at   = Column(DateTime, default=utcnow, nullable=False)
    updated_at   = Column(DateTime, default=utcnow, nullable=False)

    company  = relationship("Company", back_populates="emissions")
    category = relationship("EmissionCategory", back_populates="emissions")
    creator  = relationship("User", foreign_keys=[created_by])
    verifier = relationship("User", foreign_keys=[verified_by])


class Report(Base):
    __tablename__ = "reports"
    id          = Column(Integer, primary_key=True)
    company_id  = Column(Integer, ForeignKey("companies.id"), nullable=False)
    name        = Column(String, nullable=False)
    description = Column(Text)
    start_date  = Column(DateTime, nullable=False)
    end_date    = Column(DateTime, nullable=False)
    status      = Column(String, default="draft", nullable=False)
    type        = Column(String, nullable=False)
    data        = Column(JSON)
    created_by  = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at  = Column(DateTime, default=utcnow, nullable=False)
    updated_at  = Column(DateTime, default=utcnow, nullable=False)

    company = relationship("Company", back_populates="reports")
    creator = relationship("User")


def init_db(bind=None):
    Base.metadata.create_all(bind if bind is not None else engine)


def create_user(username, email, password, session=None, **fields):
    """Create a user with a hashed password. Returns None if the name or email is taken."""
    db = session if session is not None else Session()
    user = User(username=username, email=email,
                password=generate_password_hash(password), **fields)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Sign-up rejected, %s or %s already registered", username, email)
        return None
    finally:
        if session is None:
            db.close()
    logger.info("Created user %s", username)
    return user


def authenticate(login, password, session=None):
    """Return the user whose username or email is ``login`` if the password matches."""
    db = session if session is not None else Session()
    try:
        user = db.query(User).filter(or_(User.username == login, User.email == login)).first()
        if user is None or not check_password_hash(user.password, password):
            return None
        return user
    finally:
        if session is None:
            db.close()
