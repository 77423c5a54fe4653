import datetime as dt
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, EmailStr, Field, condecimal, field_validator, model_validator

from ..utils.format_utils import is_valid_cpf, only_digits

Money = condecimal(gt=0, max_digits=12, decimal_places=2)

TransactionType = Literal["Receita", "Despesa"]
PositionType = Literal["veneravel_mestre", "orador", "secretario", "chanceler", "tesoureiro", "mestre_banquete"]
Degree = Literal["Aprendiz", "Companheiro", "Mestre"]
AttendanceStatus = Literal["Presente", "Ausente", "Justificado"]
MessageStatus = Literal["new", "read", "replied", "archived"]
BrotherStatus = Literal["Ativo", "Inativo"]
AccountType = Literal["Corrente", "Poupança", "Caixa", "Investimento"]
BudgetPeriod = Literal["Mensal", "Anual", "Personalizado"]
GoalStatus = Literal["Em Andamento", "Concluída", "Cancelada"]
ContributionStatus = Literal["Pago", "Pendente", "Atrasado"]
EventType = Literal["Sessão", "Reunião", "Evento Social", "Outro"]
SessionStatus = Literal["Agendada", "Finalizada"]
AgapeMenuCategory = Literal["Bebida", "Comida", "Sobremesa", "Acompanhamento", "Outros"]

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class PatchModel(BaseModel):
    """Partial update body. Fields in ``non_nullable`` may be left out but not sent as null."""

    non_nullable: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def reject_explicit_null(cls, data: Any) -> Any:
        if isinstance(data, dict):
            nulls = [name for name in cls.non_nullable if name in data and data[name] is None]
            if nulls:
                raise ValueError(f"{', '.join(nulls)} may not be null")
        return data


def _normalize_cpf(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if not is_valid_cpf(value):
        raise ValueError("Invalid CPF")
    return only_digits(value)


# --- Auth ---


class RoleRead(ORMModel):
    id: int
    name: str
    description: Optional[str] = None


class UserCreate(BaseModel):
    email: EmailStr
    full_name: Optional[str] = None
    password: str = Field(min_length=8)
    roles: List[Literal["MEMBER", "EDITOR", "ADMIN"]] = Field(default_factory=lambda: ["MEMBER"], min_length=1)


class UserRead(ORMModel):
    id: int
    email: EmailStr
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    roles: List[RoleRead] = []
    created_at: datetime
    is_active: bool


class Token(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    roles: List[str]
    primary_role: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_expires_in: Optional[int] = None


class TokenRefreshRequest(BaseModel):
    refresh_token: str


class UserSelfUpdate(PatchModel):
    non_nullable = ("email",)

    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    current_password: Optional[str] = Field(default=None, min_length=8)


class PasswordChange(BaseModel):
    current_password: str = Field(min_length=8)
    new_password: str = Field(min_length=8)


# --- Brothers ---


class BrotherBase(BaseModel):
    name: str = Field(min_length=2)
    email: EmailStr
    phone: str = Field(min_length=8)
    cpf: Optional[str] = None
    dob: Optional[date] = None
    initiation_date: date
    address: Optional[str] = None
    degree: Degree = "Aprendiz"
    status: BrotherStatus = "Ativo"

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_cpf(value)


class BrotherCreate(BrotherBase):
    user_id: Optional[int] = None


class BrotherUpdate(PatchModel):
    non_nullable = ("name", "email", "phone", "initiation_date", "degree", "status")

    name: Optional[str] = Field(default=None, min_length=2)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, min_length=8)
    cpf: Optional[str] = None
    dob: Optional[date] = None
    initiation_date: Optional[date] = None
    address: Optional[str] = None
    degree: Optional[Degree] = None
    status: Optional[BrotherStatus] = None
    user_id: Optional[int] = None

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_cpf(value)


class BrotherRead(ORMModel):
    id: int
    name: str
    email: str
    phone: str
    cpf: Optional[str] = None
    dob: Optional[date] = None
    initiation_date: date
    address: Optional[str] = None
    degree: str
    status: str
    photo_url: Optional[str] = None
    user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


# --- Finance ---


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    type: TransactionType
    description: Optional[str] = None


class CategoryUpdate(PatchModel):
    non_nullable = ("name",)

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None


class CategoryRead(ORMModel):
    id: int
    name: str
    type: str
    description: Optional[str] = None


class TransactionCreate(BaseModel):
    date: dt.date
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    type: TransactionType
    amount: Money
    account_id: Optional[int] = None


class TransactionUpdate(PatchModel):
    non_nullable = ("date", "description", "category", "type", "amount")

    date: Optional[dt.date] = None
    description: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = Field(default=None, min_length=1)
    type: Optional[TransactionType] = None
    amount: Optional[Money] = None
    account_id: Optional[int] = None


class TransactionRead(ORMModel):
    id: int
    date: dt.date
    description: str
    category: str
    type: str
    amount: Decimal
    amount_display: str
    account_id: Optional[int] = None
    created_at: datetime


class AccountCreate(BaseModel):
    name: str = Field(min_length=1)
    type: AccountType = "Corrente"
    initial_balance: condecimal(max_digits=12, decimal_places=2) = Decimal("0")
    color: Optional[str] = None


class AccountUpdate(PatchModel):
    non_nullable = ("name", "type", "initial_balance")

    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[AccountType] = None
    initial_balance: Optional[condecimal(max_digits=12, decimal_places=2)] = None
    color: Optional[str] = None


class AccountRead(BaseModel):
    id: int
    name: str
    type: str
    initial_balance: Decimal
    color: Optional[str] = None
    balance: Decimal
    balance_display: str


class BudgetCreate(BaseModel):
    name: str = Field(min_length=1)
    type: TransactionType = "Despesa"
    category: Optional[str] = None
    amount: Money
    period: BudgetPeriod = "Mensal"
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class BudgetUpdate(PatchModel):
    non_nullable = ("name", "type", "amount", "period")

    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    amount: Optional[Money] = None
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class BudgetRead(BaseModel):
    id: int
    name: str
    type: str
    category: Optional[str] = None
    amount: Decimal
    period: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    current: Decimal
    percentage: float


class GoalCreate(BaseModel):
    name: str = Field(min_length=1)
    target_amount: Money
    linked_category: Optional[str] = None
    deadline: Optional[date] = None
    status: GoalStatus = "Em Andamento"


class GoalUpdate(PatchModel):
    non_nullable = ("name", "target_amount", "status")

    name: Optional[str] = Field(default=None, min_length=1)
    target_amount: Optional[Money] = None
    linked_category: Optional[str] = None
    deadline: Optional[date] = None
    status: Optional[GoalStatus] = None


class GoalRead(BaseModel):
    id: int
    name: str
    target_amount: Decimal
    linked_category: Optional[str] = None
    deadline: Optional[date] = None
    status: str
    current: Decimal
    percentage: float


class ContributionCreate(BaseModel):
    brother_id: int
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1900, le=2200)
    amount: Money
    status: ContributionStatus = "Pendente"
    payment_date: Optional[date] = None


class ContributionUpdate(PatchModel):
    non_nullable = ("amount", "status")

    amount: Optional[Money] = None
    status: Optional[ContributionStatus] = None
    payment_date: Optional[date] = None


class ContributionRead(ORMModel):
    id: int
    brother_id: int
    month: int
    year: int
    amount: Decimal
    status: str
    payment_date: Optional[date] = None


class FinancialSummaryRead(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    income_by_category: Dict[str, Decimal]
    expense_by_category: Dict[str, Decimal]


class CharityCreate(BaseModel):
    event_id: int
    amount: Money
    account_id: int
    date: dt.date
    description: Optional[str] = None


class CharityRead(BaseModel):
    total: Decimal
    total_display: str
    count: int
    items: List[TransactionRead]


# --- Positions ---


class PositionAssign(BaseModel):
    position_type: PositionType
    user_id: int
    start_date: date
    end_date: date


class PositionRead(BaseModel):
    id: int
    position_type: str
    label: str
    user_id: Optional[int] = None
    holder_name: Optional[str] = None
    holder_email: Optional[str] = None
    start_date: date
    end_date: date
    is_current: bool


class PositionHistoryRead(BaseModel):
    id: int
    position_type: str
    label: str
    user_id: Optional[int] = None
    holder_name: Optional[str] = None
    start_date: date
    end_date: date
    archived_at: datetime


class TermDefaultRead(BaseModel):
    start_date: date
    end_date: date


class MyPositionRead(BaseModel):
    position: Optional[PositionRead] = None
    permissions: List[str]


# --- Agenda ---


class LocationCreate(BaseModel):
    name: str = Field(min_length=1)
    address: Optional[str] = None


class LocationUpdate(PatchModel):
    non_nullable = ("name",)

    name: Optional[str] = Field(default=None, min_length=1)
    address: Optional[str] = None


class LocationRead(ORMModel):
    id: int
    name: str
    address: Optional[str] = None


class EventCreate(BaseModel):
    title: str = Field(min_length=1)
    date: dt.date
    time: str = Field(pattern=TIME_PATTERN)
    type: EventType = "Sessão"
    location_id: Optional[int] = None
    location: Optional[str] = None
    description: Optional[str] = None


class EventUpdate(PatchModel):
    non_nullable = ("title", "date", "time", "type")

    title: Optional[str] = Field(default=None, min_length=1)
    date: Optional[dt.date] = None
    time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    type: Optional[EventType] = None
    location_id: Optional[int] = None
    location: Optional[str] = None
    description: Optional[str] = None


class EventRead(BaseModel):
    id: int
    title: str
    date: dt.date
    time: str
    type: str
    location_id: Optional[int] = None
    location: Optional[str] = None
    location_name: str
    description: Optional[str] = None


class EventSaveResponse(BaseModel):
    event: EventRead
    conflicts: List[EventRead]


class EventConflictCheck(BaseModel):
    date: dt.date
    time: str = Field(pattern=TIME_PATTERN)
    location_id: Optional[int] = None
    location: Optional[str] = None
    exclude_event_id: Optional[int] = None


class EventConflictResult(BaseModel):
    has_conflicts: bool
    conflicts: List[EventRead]


# --- Attendance ---


class SessionRecordCreate(BaseModel):
    event_id: Optional[int] = None
    date: dt.date
    status: SessionStatus = "Agendada"
    notes: Optional[str] = None


class SessionRecordUpdate(PatchModel):
    non_nullable = ("date", "status")

    date: Optional[dt.date] = None
    status: Optional[SessionStatus] = None
    notes: Optional[str] = None


class SessionRecordRead(ORMModel):
    id: int
    event_id: Optional[int] = None
    date: dt.date
    status: str
    notes: Optional[str] = None


class AttendanceEntryIn(BaseModel):
    brother_id: int
    status: AttendanceStatus
    justification: Optional[str] = None


class AttendanceBulkSave(BaseModel):
    records: List[AttendanceEntryIn]
    finalize: bool = True


class AttendanceRecordRead(ORMModel):
    id: int
    brother_id: int
    status: str
    justification: Optional[str] = None


class SessionSummary(BaseModel):
    present: int
    justified: int
    absent: int
    percentage: int
    visitors: int = 0
    total_participants: int = 0


class SessionAttendanceRead(BaseModel):
    session: SessionRecordRead
    records: List[AttendanceRecordRead]
    summary: SessionSummary


class VisitorAttendanceCreate(BaseModel):
    name: str
    degree: Degree = "Mestre"
    lodge: str
    lodge_number: str
    obedience: str
    masonic_number: Optional[str] = None

    @field_validator("name", "lodge", "lodge_number", "obedience", "masonic_number", mode="before")
    @classmethod
    def collapse_whitespace(cls, value: Any) -> Any:
        if isinstance(value, str):
            return " ".join(value.split())
        return value

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        if not 3 <= len(value) <= 120:
            raise ValueError("Name must have between 3 and 120 characters")
        return value

    @field_validator("lodge")
    @classmethod
    def check_lodge(cls, value: str) -> str:
        if not 2 <= len(value) <= 120:
            raise ValueError("Lodge must have between 2 and 120 characters")
        return value

    @field_validator("lodge_number")
    @classmethod
    def check_lodge_number(cls, value: str) -> str:
        if not value:
            raise ValueError("Lodge number is required")
        if not value.isdigit() or not value.isascii():
            raise ValueError("Lodge number must contain digits only")
        if len(value) > 10:
            raise ValueError("Lodge number must have at most 10 digits")
        return value

    @field_validator("obedience")
    @classmethod
    def check_obedience(cls, value: str) -> str:
        if not value:
            raise ValueError("Obedience is required")
        return value

    @field_validator("masonic_number")
    @classmethod
    def check_masonic_number(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if re.fullmatch(r"[0-9.-]+", value) is None:
            raise ValueError("Masonic registration may contain only digits, dots or hyphens")
        if len(value) > 20:
            raise ValueError("Masonic registration must have at most 20 characters")
        return value


class VisitorAttendanceRead(ORMModel):
    id: int
    session_record_id: int
    name: str
    degree: str
    lodge: str
    lodge_number: str
    obedience: str
    masonic_number: Optional[str] = None


class VisitorBulkSave(BaseModel):
    visitors: List[VisitorAttendanceCreate]


class FrequencyRead(BaseModel):
    brother_id: int
    name: str
    presences: int
    total_sessions: int
    percentage: int


# --- Agape ---


class AgapeSessionCreate(BaseModel):
    date: dt.date
    description: Optional[str] = None


class AgapeSessionUpdate(PatchModel):
    non_nullable = ("date",)

    date: Optional[dt.date] = None
    description: Optional[str] = None


class AgapeSessionRead(ORMModel):
    id: int
    date: dt.date
    description: Optional[str] = None
    status: str
    created_by_user_id: Optional[int] = None


class AgapeMenuItemCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: condecimal(ge=0, max_digits=12, decimal_places=2)
    category: AgapeMenuCategory = "Comida"
    is_active: bool = True


class AgapeMenuItemUpdate(PatchModel):
    non_nullable = ("name", "price", "category", "is_active")

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[condecimal(ge=0, max_digits=12, decimal_places=2)] = None
    category: Optional[AgapeMenuCategory] = None
    is_active: Optional[bool] = None


class AgapeMenuItemRead(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    category: str
    is_active: bool


class AgapeConsumptionCreate(BaseModel):
    menu_item_id: int
    quantity: int = Field(default=1, ge=1)
    brother_id: Optional[int] = None
    notes: Optional[str] = None


class AgapeConsumptionUpdate(PatchModel):
    non_nullable = ("quantity",)

    quantity: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None


class AgapeConsumptionRead(ORMModel):
    id: int
    session_id: int
    brother_id: int
    menu_item_id: int
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    notes: Optional[str] = None


class ConsumptionSaveResponse(BaseModel):
    consumption: AgapeConsumptionRead
    merged: bool


class AgapeSessionTotals(BaseModel):
    session_id: int
    total_brothers: int
    total_items: int
    total_amount: Decimal


class AgapeBrotherTotal(BaseModel):
    session_id: int
    brother_id: int
    total_items: int
    total_amount: Decimal


class AgapeMonthlyEntry(BaseModel):
    brother_id: int
    name: str
    sessions: int
    total_items: int
    total_amount: Decimal


# --- Minutes ---


class MinuteCreate(BaseModel):
    title: str = Field(min_length=1)
    content: str = ""
    date: dt.date


class MinuteUpdate(PatchModel):
    non_nullable = ("title", "content", "date")

    title: Optional[str] = Field(default=None, min_length=1)
    content: Optional[str] = None
    date: Optional[dt.date] = None


class MinuteSignatureRead(BaseModel):
    user_id: int
    full_name: Optional[str] = None
    email: Optional[str] = None
    signed_at: datetime


class MinuteRead(BaseModel):
    id: int
    title: str
    content: str
    date: dt.date
    created_at: datetime
    updated_at: datetime
    signatures: List[MinuteSignatureRead] = []


class MinuteSignResponse(BaseModel):
    already_signed: bool
    signature: MinuteSignatureRead


# --- Contact messages ---


class ContactMessageCreate(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    email: EmailStr
    message: str = Field(min_length=5, max_length=5000)
    category: Optional[str] = None


class ContactMessageRead(ORMModel):
    id: int
    name: str
    email: str
    message: str
    category: Optional[str] = None
    status: str
    reply_text: Optional[str] = None
    replied_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class MessageStatusUpdate(BaseModel):
    status: MessageStatus


class MessageReplyRequest(BaseModel):
    reply_text: str = Field(min_length=1)


class MessageReplyResponse(BaseModel):
    message: ContactMessageRead
    email_sent: bool


# --- Documents ---


class LodgeDocumentUpdate(PatchModel):
    non_nullable = ("title", "category")

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, min_length=1)


class LodgeDocumentRead(ORMModel):
    id: int
    title: str
    description: Optional[str] = None
    category: str
    file_path: str
    content_type: Optional[str] = None
    file_size: Optional[int] = None
    uploaded_by_user_id: Optional[int] = None
    created_at: datetime


# --- Venerables ---


class VenerableCreate(BaseModel):
    name: str = Field(min_length=2)
    term_start: int = Field(ge=1800, le=2200)
    term_end: Optional[int] = Field(default=None, ge=1800, le=2200)
    photo_url: Optional[str] = None
    bio: Optional[str] = None

    @model_validator(mode="after")
    def check_term(self) -> "VenerableCreate":
        if self.term_end is not None and self.term_end < self.term_start:
            raise ValueError("term_end must not be earlier than term_start")
        return self


class VenerableUpdate(PatchModel):
    non_nullable = ("name", "term_start")

    name: Optional[str] = Field(default=None, min_length=2)
    term_start: Optional[int] = Field(default=None, ge=1800, le=2200)
    term_end: Optional[int] = Field(default=None, ge=1800, le=2200)
    photo_url: Optional[str] = None
    bio: Optional[str] = None


class VenerableRead(ORMModel):
    id: int
    name: str
    term_start: int
    term_end: Optional[int] = None
    photo_url: Optional[str] = None
    bio: Optional[str] = None


# --- Settings ---


class SiteSettingUpdate(BaseModel):
    value: Any


# --- Audit ---


class AuditLogActor(BaseModel):
    id: Optional[int] = None
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None


class AuditLogEntry(BaseModel):
    id: int
    timestamp: datetime
    action: str
    target_entity_type: Optional[str] = None
    target_entity_id: Optional[str] = None
    before: Optional[str] = None
    after: Optional[str] = None
    actor: AuditLogActor


class AuditLogList(BaseModel):
    items: List[AuditLogEntry]
    total: int
