from datetime import datetime, timezone
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from ..constants import ROLE_PRIORITY


def utcnow():
    return datetime.now(timezone.utc)


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime, default=utcnow, nullable=False),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    description = Column(String, nullable=True)

    users = orm_relationship("User", secondary=user_roles, back_populates="roles")


class User(Base):
    """Login account. Plays the part of a member "profile"."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    roles = orm_relationship("Role", secondary=user_roles, back_populates="users")
    audit_logs = orm_relationship("AuditLog", back_populates="actor")
    brother = orm_relationship("Brother", back_populates="user", uselist=False)

    @property
    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]

    def has_role(self, role_name: str) -> bool:
        return any(role.name == role_name for role in self.roles)

    def has_any_role(self, *role_names: str) -> bool:
        targets = set(role_names)
        return any(role.name in targets for role in self.roles)

    @property
    def highest_priority_role(self):
        if not self.roles:
            return None
        return max(self.roles, key=lambda role: ROLE_PRIORITY.get(role.name, 0))


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True, nullable=False)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String, nullable=False)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)
    before = Column(Text, nullable=True)
    after = Column(Text, nullable=True)

    actor = orm_relationship("User", back_populates="audit_logs")


class Brother(Base):
    __tablename__ = "brothers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    cpf = Column(String, nullable=True)
    dob = Column(Date, nullable=True)
    initiation_date = Column(Date, nullable=False)
    address = Column(Text, nullable=True)
    degree = Column(String, nullable=False, default="Aprendiz")
    status = Column(String, nullable=False, default="Ativo", index=True)
    photo_url = Column(String, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = orm_relationship("User", back_populates="brother")
    contributions = orm_relationship("Contribution", back_populates="brother", cascade="all, delete-orphan")
    attendance = orm_relationship("AttendanceRecord", back_populates="brother", cascade="all, delete-orphan")


class LodgePosition(Base):
    __tablename__ = "lodge_positions"

    id = Column(Integer, primary_key=True, index=True)
    position_type = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = orm_relationship("User")


class LodgePositionHistory(Base):
    __tablename__ = "lodge_position_history"

    id = Column(Integer, primary_key=True, index=True)
    position_type = Column(String, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    archived_at = Column(DateTime, default=utcnow, nullable=False)

    user = orm_relationship("User")


class FinancialCategory(Base):
    __tablename__ = "financial_categories"
    __table_args__ = (UniqueConstraint("name", "type", name="uq_financial_category_name_type"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class BankAccount(Base):
    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="Corrente")
    initial_balance = Column(Numeric(12, 2), nullable=False, default=0)
    color = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    transactions = orm_relationship("FinancialTransaction", back_populates="account")


class FinancialTransaction(Base):
    __tablename__ = "financial_transactions"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    description = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    account_id = Column(Integer, ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    account = orm_relationship("BankAccount", back_populates="transactions")


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="Despesa")
    category = Column(String, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    period = Column(String, nullable=False, default="Mensal")
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class FinancialGoal(Base):
    __tablename__ = "financial_goals"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    target_amount = Column(Numeric(12, 2), nullable=False)
    linked_category = Column(String, nullable=True)
    deadline = Column(Date, nullable=True)
    status = Column(String, nullable=False, default="Em Andamento")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Contribution(Base):
    __tablename__ = "contributions"
    __table_args__ = (UniqueConstraint("brother_id", "month", "year", name="uq_contribution_brother_month"),)

    id = Column(Integer, primary_key=True, index=True)
    brother_id = Column(Integer, ForeignKey("brothers.id", ondelete="CASCADE"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="Pendente")
    payment_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    brother = orm_relationship("Brother", back_populates="contributions")


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    address = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    events = orm_relationship("Event", back_populates="location_ref")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)
    type = Column(String, nullable=False, default="Sessão")
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    location = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    location_ref = orm_relationship("Location", back_populates="events")
    session_records = orm_relationship("SessionRecord", back_populates="event", cascade="all, delete-orphan")


class SessionRecord(Base):
    __tablename__ = "session_records"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=True)
    date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="Agendada")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    event = orm_relationship("Event", back_populates="session_records")
    attendance = orm_relationship("AttendanceRecord", back_populates="session_record", cascade="all, delete-orphan")
    visitors = orm_relationship(
        "VisitorAttendance",
        back_populates="session_record",
        cascade="all, delete-orphan",
        order_by="VisitorAttendance.id",
    )


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (UniqueConstraint("session_record_id", "brother_id", name="uq_attendance_session_brother"),)

    id = Column(Integer, primary_key=True, index=True)
    session_record_id = Column(Integer, ForeignKey("session_records.id", ondelete="CASCADE"), nullable=False, index=True)
    brother_id = Column(Integer, ForeignKey("brothers.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)
    justification = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    session_record = orm_relationship("SessionRecord", back_populates="attendance")
    brother = orm_relationship("Brother", back_populates="attendance")


class VisitorAttendance(Base):
    """A brother from another lodge present at a session."""

    __tablename__ = "visitor_attendances"

    id = Column(Integer, primary_key=True, index=True)
    session_record_id = Column(Integer, ForeignKey("session_records.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    degree = Column(String, nullable=False, default="Mestre")
    lodge = Column(String(120), nullable=False)
    lodge_number = Column(String(10), nullable=False)
    obedience = Column(String, nullable=False)
    masonic_number = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    session_record = orm_relationship("SessionRecord", back_populates="visitors")


class AgapeSession(Base):
    __tablename__ = "agape_sessions"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="open", index=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    consumptions = orm_relationship("AgapeConsumption", back_populates="session", cascade="all, delete-orphan")


class AgapeMenuItem(Base):
    __tablename__ = "agape_menu_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    category = Column(String, nullable=False, default="Comida")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AgapeConsumption(Base):
    __tablename__ = "agape_consumptions"
    __table_args__ = (
        UniqueConstraint("session_id", "brother_id", "menu_item_id", name="uq_agape_consumption_item"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("agape_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    brother_id = Column(Integer, ForeignKey("brothers.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("agape_menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    # Price at the time of consumption; later menu changes do not reprice it.
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    session = orm_relationship("AgapeSession", back_populates="consumptions")
    brother = orm_relationship("Brother")
    menu_item = orm_relationship("AgapeMenuItem")


class Minute(Base):
    __tablename__ = "minutes"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    date = Column(Date, nullable=False, index=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    signatures = orm_relationship(
        "MinuteSignature",
        back_populates="minute",
        cascade="all, delete-orphan",
        order_by="MinuteSignature.signed_at",
    )


class MinuteSignature(Base):
    __tablename__ = "minutes_signatures"
    __table_args__ = (UniqueConstraint("minute_id", "user_id", name="uq_minute_signature"),)

    id = Column(Integer, primary_key=True, index=True)
    minute_id = Column(Integer, ForeignKey("minutes.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    signed_at = Column(DateTime, default=utcnow, nullable=False)

    minute = orm_relationship("Minute", back_populates="signatures")
    user = orm_relationship("User")


class ContactMessage(Base):
    __tablename__ = "contact_messages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    category = Column(String, nullable=True)
    status = Column(String, nullable=False, default="new", index=True)
    reply_text = Column(Text, nullable=True)
    replied_at = Column(DateTime, nullable=True)
    replied_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class LodgeDocument(Base):
    __tablename__ = "lodge_documents"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    content_type = Column(String, nullable=True)
    file_size = Column(Integer, nullable=True)
    uploaded_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    uploaded_by = orm_relationship("User")


class Venerable(Base):
    __tablename__ = "venerables"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    term_start = Column(Integer, nullable=False)
    term_end = Column(Integer, nullable=True)
    photo_url = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SiteSetting(Base):
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, nullable=False, unique=True, index=True)
    value = Column(JSON, nullable=True)
    updated_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
