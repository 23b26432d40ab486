import datetime as dt
import logging
import os
import secrets
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import bcrypt
from fastapi import FastAPI, HTTPException, Header, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError

from fintrack.dashboard_engine import (
    DashboardFilter,
    DashboardTransaction,
    PieSeries,
    build_dashboard,
    normalize_period,
)
from fintrack.formatters import (
    contrasting_text_color,
    normalize_hex_color,
    parse_amount,
)
from fintrack.goal_engine import (
    DEFAULT_ALERT_LEVELS,
    Goal,
    GoalProgress,
    Transaction,
    evaluate_goal,
    format_alert_message,
    goal_period,
    should_alert,
)
from fintrack.observability import setup_logging
from fintrack.recurring_schedule import (
    RecurringTemplate,
    normalize_frequency,
    project_upcoming_for_all,
    should_execute,
)
from fintrack.report_engine import (
    ReportTransaction,
    calculate_trends,
    export_csv,
    normalize_report_period,
    normalize_report_type,
    previous_report_range,
    resolve_report_range,
    summarize,
)

logger = logging.getLogger(__name__)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "168"))
CENTS = Decimal("0.01")
UPCOMING_DEFAULT_DAYS = 30


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(LOG_LEVEL, LOG_FORMAT)
    metadata.create_all(engine)
    logger.info("fintrack started on %s", engine.dialect.name)
    yield


app = FastAPI(lifespan=lifespan)

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

database_url = os.getenv("DATABASE_URL", "sqlite:///./fintrack.db")
connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(database_url, connect_args=connect_args)
metadata = MetaData()

DEFAULT_CATEGORIES = [
    ("Salary", "income", "#4ADE80"),
    ("Freelance", "income", "#38BDF8"),
    ("Investments", "income", "#A78BFA"),
    ("Food", "expense", "#F87171"),
    ("Housing", "expense", "#FB923C"),
    ("Transport", "expense", "#FBBF24"),
    ("Health", "expense", "#2DD4BF"),
    ("Leisure", "expense", "#F472B6"),
    ("Education", "expense", "#60A5FA"),
    ("Other", "expense", "#94A3B8"),
]
DEFAULT_CARD_COLOR = "#8B5CF6"
DEFAULT_THEME = "dark"

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), unique=True, nullable=False),
    Column("hashed_password", String(255), nullable=False),
    Column("theme", String(10), nullable=False, server_default=DEFAULT_THEME),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("token", String(64), unique=True, nullable=False),
    Column("expires_at", DateTime, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("type", String(20), nullable=False),
    Column("color", String(7), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "name", "type", name="uq_categories_user_name_type"),
)

credit_cards = Table(
    "credit_cards",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("credit_limit", Numeric(12, 2), nullable=False),
    Column("due_day", Integer, nullable=False),
    Column("color", String(7), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
)

recurring_transactions = Table(
    "recurring_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("type", String(20), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id")),
    Column("payment_method", String(50)),
    Column("frequency", String(20), nullable=False),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_execution", Date),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("type", String(20), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id")),
    Column("category", String(255)),
    Column("category_color", String(7)),
    Column("method", String(50)),
    Column("card_id", Integer, ForeignKey("credit_cards.id")),
    Column("recurring_id", Integer, ForeignKey("recurring_transactions.id")),
    Column("date", Date, nullable=False),
    Column("realized", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

goals = Table(
    "goals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("goal_type", String(20), nullable=False),
    Column("target_value", Numeric(12, 2), nullable=False),
    Column("is_percentage", Boolean, nullable=False, default=False),
    Column("period", String(20), nullable=False),
    Column("start_date", Date),
    Column("end_date", Date),
    Column("category_id", Integer, ForeignKey("categories.id")),
    Column("card_id", Integer, ForeignKey("credit_cards.id")),
    Column("alerts_enabled", Boolean, nullable=False, default=False),
    Column("alert_levels", JSON, nullable=False, default=list(DEFAULT_ALERT_LEVELS)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error."})


class TransactionType:
    values = {"income", "expense"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Type must be income or expense.")
        return normalized


class Theme:
    values = {"light", "dark"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Theme must be light or dark.")
        return normalized


class GoalType:
    values = {"category", "card", "general"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Goal type must be category, card, or general.")
        return normalized


class GoalPeriod:
    values = {"monthly", "yearly", "custom"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Goal period must be monthly, yearly, or custom.")
        return normalized


TRANSACTION_SORTS = {
    "date_desc": (transactions.c.date.desc(), transactions.c.id.desc()),
    "date_asc": (transactions.c.date.asc(), transactions.c.id.asc()),
    "amount_desc": (transactions.c.amount.desc(), transactions.c.id.desc()),
    "amount_asc": (transactions.c.amount.asc(), transactions.c.id.asc()),
}


class CredentialsPayload(BaseModel):
    email: str
    password: str

    @classmethod
    def validate_payload(cls, payload: "CredentialsPayload") -> "CredentialsPayload":
        payload.email = payload.email.strip().lower()
        if not payload.email or "@" not in payload.email:
            raise ValueError("A valid email is required.")
        if len(payload.password) < 6:
            raise ValueError("Password must be at least 6 characters.")
        return payload


class UserResponse(BaseModel):
    id: int
    email: str
    theme: str
    created_at: datetime | None = None


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class UserSettingsPayload(BaseModel):
    theme: str

    @classmethod
    def validate_payload(cls, payload: "UserSettingsPayload") -> "UserSettingsPayload":
        payload.theme = Theme.validate(payload.theme)
        return payload


class UserSettingsResponse(BaseModel):
    id: int
    email: str
    theme: str


class CategoryPayload(BaseModel):
    name: str
    type: str
    color: str

    @classmethod
    def validate_payload(cls, payload: "CategoryPayload") -> "CategoryPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Category name required.")
        payload.type = TransactionType.validate(payload.type)
        payload.color = normalize_hex_color(payload.color)
        return payload


class CategoryUpdatePayload(BaseModel):
    name: str | None = None
    type: str | None = None
    color: str | None = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    type: str
    color: str
    text_color: str
    created_at: datetime | None = None


class CardPayload(BaseModel):
    name: str
    credit_limit: Decimal | str
    due_day: int
    color: str = DEFAULT_CARD_COLOR
    is_active: bool = True

    @classmethod
    def validate_payload(cls, payload: "CardPayload") -> "CardPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Card name required.")
        payload.credit_limit = parse_amount(payload.credit_limit)
        if payload.credit_limit <= 0:
            raise ValueError("Credit limit must be greater than zero.")
        if not 1 <= payload.due_day <= 31:
            raise ValueError("Due day must be between 1 and 31.")
        payload.color = normalize_hex_color(payload.color)
        return payload


class CardUpdatePayload(BaseModel):
    name: str | None = None
    credit_limit: Decimal | str | None = None
    due_day: int | None = None
    color: str | None = None
    is_active: bool | None = None


class CardResponse(BaseModel):
    id: int
    name: str
    credit_limit: Decimal
    due_day: int
    color: str
    text_color: str
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CardStatementResponse(BaseModel):
    card_id: int
    month: str
    statement: Decimal
    credit_limit: Decimal
    available: Decimal


class DashboardCardResponse(CardResponse):
    statement: Decimal
    available: Decimal


class TransactionPayload(BaseModel):
    name: str
    amount: Decimal | str
    type: str
    category_id: int | None = None
    method: str | None = None
    card_id: int | None = None
    recurring_id: int | None = None
    date: date
    realized: bool = True

    @classmethod
    def validate_payload(cls, payload: "TransactionPayload") -> "TransactionPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Transaction name required.")
        payload.type = TransactionType.validate(payload.type)
        payload.amount = parse_amount(payload.amount)
        if payload.amount <= 0:
            raise ValueError("Amount must be greater than zero.")
        payload.method = payload.method.strip() if payload.method else None
        return payload


class TransactionUpdatePayload(BaseModel):
    name: str | None = None
    amount: Decimal | str | None = None
    type: str | None = None
    category_id: int | None = None
    method: str | None = None
    card_id: int | None = None
    date: dt.date | None = None
    realized: bool | None = None


class TransactionResponse(BaseModel):
    id: int
    name: str
    amount: Decimal
    type: str
    category_id: int | None = None
    category: str | None = None
    category_color: str | None = None
    method: str | None = None
    card_id: int | None = None
    recurring_id: int | None = None
    date: date
    realized: bool
    created_at: datetime | None = None


class RecurringPayload(BaseModel):
    name: str
    amount: Decimal | str
    type: str = "expense"
    category_id: int | None = None
    payment_method: str | None = None
    frequency: str = "monthly"
    start_date: date
    end_date: date | None = None
    is_active: bool = True

    @classmethod
    def validate_payload(cls, payload: "RecurringPayload") -> "RecurringPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Recurring transaction name required.")
        payload.amount = parse_amount(payload.amount)
        if payload.amount <= 0:
            raise ValueError("Recurring transaction amount must be greater than zero.")
        payload.type = TransactionType.validate(payload.type)
        payload.frequency = normalize_frequency(payload.frequency)
        payload.payment_method = payload.payment_method.strip() if payload.payment_method else None
        if payload.end_date is not None and payload.end_date < payload.start_date:
            raise ValueError("End date must be on or after start date.")
        return payload


class RecurringUpdatePayload(BaseModel):
    name: str | None = None
    amount: Decimal | str | None = None
    type: str | None = None
    category_id: int | None = None
    payment_method: str | None = None
    frequency: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool | None = None


class RecurringStatusPayload(BaseModel):
    is_active: bool


class RecurringResponse(BaseModel):
    id: int
    name: str
    amount: Decimal
    type: str
    category_id: int | None = None
    payment_method: str | None = None
    frequency: str
    start_date: date
    end_date: date | None = None
    is_active: bool
    last_execution: date | None = None
    created_at: datetime | None = None


class RecurringExecutionResponse(BaseModel):
    executed: int


class UpcomingOccurrenceResponse(BaseModel):
    recurring_id: int | None = None
    name: str | None = None
    date: date
    amount: Decimal
    type: str


class GoalPayload(BaseModel):
    name: str
    goal_type: str
    target_value: Decimal | str
    is_percentage: bool = False
    period: str = "monthly"
    start_date: date | None = None
    end_date: date | None = None
    category_id: int | None = None
    card_id: int | None = None
    alerts_enabled: bool = False
    alert_levels: list[int] | None = None
    is_active: bool = True

    @classmethod
    def validate_payload(cls, payload: "GoalPayload") -> "GoalPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Goal name required.")
        payload.goal_type = GoalType.validate(payload.goal_type)
        payload.period = GoalPeriod.validate(payload.period)
        payload.target_value = parse_amount(payload.target_value)
        if payload.target_value <= 0:
            raise ValueError("Target value must be greater than zero.")
        if payload.goal_type == "category" and payload.category_id is None:
            raise ValueError("Category goals require a category.")
        if payload.goal_type == "card" and payload.card_id is None:
            raise ValueError("Card goals require a card.")
        if payload.period == "custom":
            if payload.start_date is None or payload.end_date is None:
                raise ValueError("Custom goals require start and end dates.")
            if payload.start_date > payload.end_date:
                raise ValueError("Start date must be on or before end date.")
        if payload.alert_levels is None:
            payload.alert_levels = list(DEFAULT_ALERT_LEVELS)
        if any(level < 1 or level > 200 for level in payload.alert_levels):
            raise ValueError("Alert levels must be between 1 and 200.")
        payload.alert_levels = sorted(set(payload.alert_levels))
        return payload


class GoalUpdatePayload(BaseModel):
    name: str | None = None
    goal_type: str | None = None
    target_value: Decimal | str | None = None
    is_percentage: bool | None = None
    period: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    category_id: int | None = None
    card_id: int | None = None
    alerts_enabled: bool | None = None
    alert_levels: list[int] | None = None
    is_active: bool | None = None


class GoalResponse(BaseModel):
    id: int
    name: str
    goal_type: str
    target_value: Decimal
    is_percentage: bool
    period: str
    start_date: date | None = None
    end_date: date | None = None
    category_id: int | None = None
    card_id: int | None = None
    alerts_enabled: bool
    alert_levels: list[int]
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GoalProgressResponse(BaseModel):
    goal: GoalResponse
    current_value: Decimal
    target_value: Decimal
    percentage: Decimal
    status: str
    remaining_value: Decimal
    period_start: date
    period_end: date


class GoalAlertResponse(GoalProgressResponse):
    message: str


class SummaryResponse(BaseModel):
    incomes: Decimal
    expenses: Decimal
    balance: Decimal
    receivable: Decimal
    payable: Decimal
    previous_month_balance: Decimal


class LineChartResponse(BaseModel):
    labels: list[str]
    incomes: list[Decimal]
    expenses: list[Decimal]


class PieChartResponse(BaseModel):
    categories: list[str]
    values: list[Decimal]
    colors: list[str]
    percentages: list[int]


class DashboardResponse(BaseModel):
    month: int
    year: int
    period: str
    summary: SummaryResponse
    line_chart: LineChartResponse
    expense_pie: PieChartResponse
    income_pie: PieChartResponse
    recent_transactions: list[TransactionResponse]
    credit_cards: list[DashboardCardResponse]


class ReportSummaryResponse(BaseModel):
    total_balance: Decimal
    total_income: Decimal
    total_expense: Decimal
    pending_receivables: Decimal
    pending_payables: Decimal
    transaction_count: int


class ReportResponse(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    transactions: list[TransactionResponse]
    categories: list[CategoryResponse]
    cards: list[CardResponse]
    summary: ReportSummaryResponse


class TrendResponse(BaseModel):
    value: Decimal
    is_positive: bool


class ReportTrendsResponse(BaseModel):
    income: TrendResponse
    expense: TrendResponse
    balance: TrendResponse


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_session(conn, user_id: int) -> str:
    token = secrets.token_urlsafe(32)
    conn.execute(
        insert(sessions).values(
            user_id=user_id,
            token=token,
            expires_at=utcnow() + timedelta(hours=SESSION_TTL_HOURS),
        )
    )
    return token


def get_user_id(authorization: str | None = Header(None)) -> int:
    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing session token.")
    expired = False
    with engine.begin() as conn:
        row = conn.execute(
            select(sessions.c.id, sessions.c.user_id, sessions.c.expires_at).where(
                sessions.c.token == token
            )
        ).mappings().first()
        if row and row["expires_at"] <= utcnow():
            conn.execute(sessions.delete().where(sessions.c.id == row["id"]))
            expired = True
    if not row:
        raise HTTPException(status_code=401, detail="Invalid session token.")
    if expired:
        raise HTTPException(status_code=401, detail="Session expired.")
    return row["user_id"]


def merge_payload(model: type[BaseModel], existing, changes: BaseModel) -> BaseModel:
    data = {name: existing[name] for name in model.model_fields if name in existing}
    data.update(changes.model_dump(exclude_unset=True))
    return model(**data)


def coerce_decimal(value: Decimal | float | int | str | None) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value)).quantize(CENTS)


def month_start(value: date) -> date:
    return value.replace(day=1)


def month_end(value: date) -> date:
    month_index = value.year * 12 + value.month
    return date(month_index // 12, month_index % 12 + 1, 1) - timedelta(days=1)


def ensure_default_categories(conn, user_id: int) -> None:
    existing = conn.execute(
        select(categories.c.id).where(categories.c.user_id == user_id).limit(1)
    ).first()
    if existing:
        return
    conn.execute(
        insert(categories),
        [
            {"user_id": user_id, "name": name, "type": category_type, "color": color}
            for name, category_type, color in DEFAULT_CATEGORIES
        ],
    )


def get_owned_category(conn, user_id: int, category_id: int | None):
    if category_id is None:
        return None
    row = conn.execute(
        select(categories).where(
            categories.c.id == category_id, categories.c.user_id == user_id
        )
    ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Category not found.")
    return row


def ensure_owned_card(conn, user_id: int, card_id: int | None) -> None:
    if card_id is None:
        return
    exists = conn.execute(
        select(credit_cards.c.id).where(
            credit_cards.c.id == card_id, credit_cards.c.user_id == user_id
        )
    ).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Card not found.")


def ensure_owned_recurring(conn, user_id: int, recurring_id: int | None) -> None:
    if recurring_id is None:
        return
    exists = conn.execute(
        select(recurring_transactions.c.id).where(
            recurring_transactions.c.id == recurring_id,
            recurring_transactions.c.user_id == user_id,
        )
    ).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Recurring transaction not found.")


def category_blockers(conn, user_id: int, category_id: int) -> list[str]:
    blockers = []
    recurring_match = conn.execute(
        select(recurring_transactions.c.id)
        .where(
            recurring_transactions.c.user_id == user_id,
            recurring_transactions.c.category_id == category_id,
        )
        .limit(1)
    ).first()
    if recurring_match:
        blockers.append("recurring transactions")
    goal_match = conn.execute(
        select(goals.c.id)
        .where(goals.c.user_id == user_id, goals.c.category_id == category_id)
        .limit(1)
    ).first()
    if goal_match:
        blockers.append("goals")
    return blockers


def user_response(row) -> UserResponse:
    return UserResponse(
        id=row["id"],
        email=row["email"],
        theme=row["theme"],
        created_at=row["created_at"],
    )


def category_response(row) -> CategoryResponse:
    return CategoryResponse(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        color=row["color"],
        text_color=contrasting_text_color(row["color"]),
        created_at=row["created_at"],
    )


def card_response(row) -> CardResponse:
    return CardResponse(
        id=row["id"],
        name=row["name"],
        credit_limit=row["credit_limit"],
        due_day=row["due_day"],
        color=row["color"],
        text_color=contrasting_text_color(row["color"]),
        is_active=row["is_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def recurring_response(row) -> RecurringResponse:
    return RecurringResponse(
        id=row["id"],
        name=row["name"],
        amount=row["amount"],
        type=row["type"],
        category_id=row["category_id"],
        payment_method=row["payment_method"],
        frequency=row["frequency"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        is_active=row["is_active"],
        last_execution=row["last_execution"],
        created_at=row["created_at"],
    )


def goal_response(row) -> GoalResponse:
    return GoalResponse(
        id=row["id"],
        name=row["name"],
        goal_type=row["goal_type"],
        target_value=row["target_value"],
        is_percentage=row["is_percentage"],
        period=row["period"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        category_id=row["category_id"],
        card_id=row["card_id"],
        alerts_enabled=row["alerts_enabled"],
        alert_levels=list(row["alert_levels"] or []),
        is_active=row["is_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def transaction_query():
    join_stmt = transactions.outerjoin(
        categories,
        (categories.c.id == transactions.c.category_id)
        & (categories.c.user_id == transactions.c.user_id),
    )
    return select(
        transactions,
        categories.c.name.label("linked_category"),
        categories.c.color.label("linked_category_color"),
    ).select_from(join_stmt)


def transaction_response(row) -> TransactionResponse:
    return TransactionResponse(
        id=row["id"],
        name=row["name"],
        amount=row["amount"],
        type=row["type"],
        category_id=row["category_id"],
        category=row["linked_category"] or row["category"],
        category_color=row["linked_category_color"] or row["category_color"],
        method=row["method"],
        card_id=row["card_id"],
        recurring_id=row["recurring_id"],
        date=row["date"],
        realized=row["realized"],
        created_at=row["created_at"],
    )


def fetch_transaction(conn, user_id: int, transaction_id: int):
    return conn.execute(
        transaction_query().where(
            transactions.c.id == transaction_id, transactions.c.user_id == user_id
        )
    ).mappings().first()


def fetch_card_statements(conn, user_id: int, today: date) -> dict[int, Decimal]:
    result = conn.execute(
        select(transactions.c.card_id, func.sum(transactions.c.amount))
        .where(
            transactions.c.user_id == user_id,
            transactions.c.card_id.is_not(None),
            transactions.c.type == "expense",
            transactions.c.date >= month_start(today),
            transactions.c.date <= month_end(today),
        )
        .group_by(transactions.c.card_id)
    )
    return {card_id: coerce_decimal(total) for card_id, total in result.all()}


def execute_recurring_transactions(user_id: int, today: date) -> int:
    with engine.begin() as conn:
        rows = conn.execute(
            select(recurring_transactions).where(
                recurring_transactions.c.user_id == user_id,
                recurring_transactions.c.is_active.is_(True),
            )
        ).mappings().all()

    executed = 0
    for row in rows:
        try:
            template = RecurringTemplate(
                id=row["id"],
                name=row["name"],
                amount=row["amount"],
                type=row["type"],
                frequency=row["frequency"],
                start_date=row["start_date"],
                end_date=row["end_date"],
                last_execution=row["last_execution"],
                is_active=row["is_active"],
            )
            if not should_execute(template, today):
                continue
            with engine.begin() as conn:
                if row["last_execution"] is None:
                    unchanged = recurring_transactions.c.last_execution.is_(None)
                else:
                    unchanged = recurring_transactions.c.last_execution == row["last_execution"]
                claimed = conn.execute(
                    update(recurring_transactions)
                    .where(recurring_transactions.c.id == row["id"], unchanged)
                    .values(last_execution=today)
                )
                if claimed.rowcount != 1:
                    continue
                category = None
                if row["category_id"] is not None:
                    category = conn.execute(
                        select(categories.c.name, categories.c.color).where(
                            categories.c.id == row["category_id"],
                            categories.c.user_id == user_id,
                        )
                    ).mappings().first()
                conn.execute(
                    insert(transactions).values(
                        user_id=user_id,
                        name=row["name"],
                        amount=row["amount"],
                        type=row["type"],
                        category_id=row["category_id"] if category else None,
                        category=category["name"] if category else None,
                        category_color=category["color"] if category else None,
                        method=row["payment_method"],
                        recurring_id=row["id"],
                        date=today,
                        realized=True,
                    )
                )
            executed += 1
        except Exception:
            logger.exception(
                "Recurring transaction execution failed",
                extra={"user_id": user_id, "recurring_id": row["id"]},
            )
    if executed:
        logger.info(
            "Recurring transactions executed",
            extra={"user_id": user_id, "executed": executed},
        )
    return executed


def goal_from_row(row) -> Goal:
    return Goal(
        name=row["name"],
        goal_type=row["goal_type"],
        target_value=row["target_value"],
        period=row["period"],
        is_percentage=row["is_percentage"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        category_id=row["category_id"],
        card_id=row["card_id"],
        alerts_enabled=row["alerts_enabled"],
        alert_levels=tuple(row["alert_levels"] or ()),
    )


def calculate_goal_progress(
    conn, user_id: int, row, today: date
) -> tuple[GoalProgressResponse, Goal, GoalProgress]:
    goal = goal_from_row(row)
    try:
        start_date, end_date = goal_period(goal, today)
        txn_rows = conn.execute(
            select(
                transactions.c.amount,
                transactions.c.type,
                transactions.c.date,
                transactions.c.category_id,
                transactions.c.card_id,
            ).where(
                transactions.c.user_id == user_id,
                transactions.c.date >= start_date,
                transactions.c.date <= end_date,
            )
        ).mappings().all()
        progress = evaluate_goal(
            [
                Transaction(
                    amount=txn["amount"],
                    type=txn["type"],
                    date=txn["date"],
                    category_id=txn["category_id"],
                    card_id=txn["card_id"],
                )
                for txn in txn_rows
            ],
            goal,
            start_date,
            end_date,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid goal {row['id']}: {exc}",
        ) from exc
    return GoalProgressResponse(
        goal=goal_response(row),
        current_value=coerce_decimal(progress.current_value),
        target_value=coerce_decimal(progress.target_value),
        percentage=coerce_decimal(progress.percentage),
        status=progress.status,
        remaining_value=coerce_decimal(progress.remaining_value),
        period_start=progress.period_start,
        period_end=progress.period_end,
    ), goal, progress


def pie_response(series: PieSeries) -> PieChartResponse:
    return PieChartResponse(
        categories=series.categories,
        values=[coerce_decimal(value) for value in series.values],
        colors=series.colors,
        percentages=series.percentages,
    )


def resolve_report_filters(
    period: str,
    txn_type: str,
    start_date: date | None,
    end_date: date | None,
    today: date,
) -> tuple[str, str, date | None, date | None]:
    try:
        normalized_period = normalize_report_period(period)
        normalized_type = normalize_report_type(txn_type)
        range_start, range_end = resolve_report_range(
            normalized_period, today, start_date, end_date
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return normalized_period, normalized_type, range_start, range_end


def fetch_report_rows(
    conn,
    user_id: int,
    txn_type: str,
    range_start: date | None,
    range_end: date | None,
    category_id: int | None,
    card_id: int | None,
    method: str | None,
):
    conditions = [transactions.c.user_id == user_id]
    if txn_type != "all":
        conditions.append(transactions.c.type == txn_type)
    if range_start is not None:
        conditions.append(transactions.c.date >= range_start)
    if range_end is not None:
        conditions.append(transactions.c.date <= range_end)
    if category_id is not None:
        conditions.append(transactions.c.category_id == category_id)
    if card_id is not None:
        conditions.append(transactions.c.card_id == card_id)
    if method:
        conditions.append(transactions.c.method == method)
    return conn.execute(
        transaction_query()
        .where(*conditions)
        .order_by(transactions.c.date.desc(), transactions.c.id.desc())
    ).mappings().all()


def report_items(rows) -> list[ReportTransaction]:
    return [
        ReportTransaction(
            amount=row["amount"],
            type=row["type"],
            date=row["date"],
            realized=row["realized"],
            name=row["name"],
            category=row["linked_category"] or row["category"],
            method=row["method"],
        )
        for row in rows
    ]


def report_summary_response(summary) -> ReportSummaryResponse:
    return ReportSummaryResponse(
        total_balance=coerce_decimal(summary.total_balance),
        total_income=coerce_decimal(summary.total_income),
        total_expense=coerce_decimal(summary.total_expense),
        pending_receivables=coerce_decimal(summary.pending_receivables),
        pending_payables=coerce_decimal(summary.pending_payables),
        transaction_count=summary.transaction_count,
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/auth/signup", response_model=AuthResponse)
def signup(payload: CredentialsPayload) -> AuthResponse:
    try:
        payload = CredentialsPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    hashed_password = hash_password(payload.password)

    stmt = (
        insert(users)
        .values(email=payload.email, hashed_password=hashed_password)
        .returning(users)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
            token = None
            if row:
                ensure_default_categories(conn, row["id"])
                token = create_session(conn, row["id"])
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Email already exists.") from exc

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create user.")
    logger.info("User signed up", extra={"user_id": row["id"]})
    return AuthResponse(token=token, user=user_response(row))


@app.post("/auth/login", response_model=AuthResponse)
def login(payload: CredentialsPayload) -> AuthResponse:
    email = payload.email.strip().lower()
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.email == email)).mappings().first()
        token = None
        if row and verify_password(payload.password, row["hashed_password"]):
            conn.execute(
                sessions.delete().where(
                    sessions.c.user_id == row["id"], sessions.c.expires_at <= utcnow()
                )
            )
            token = create_session(conn, row["id"])

    if not token:
        logger.warning("Failed sign-in attempt")
        raise HTTPException(status_code=401, detail="Invalid credentials.")
    return AuthResponse(token=token, user=user_response(row))


@app.post("/auth/logout")
def logout(authorization: str | None = Header(None)) -> dict:
    get_user_id(authorization)
    token = extract_bearer_token(authorization)
    with engine.begin() as conn:
        conn.execute(sessions.delete().where(sessions.c.token == token))
    return {"status": "logged_out"}


@app.get("/auth/me", response_model=UserResponse)
def current_user(authorization: str | None = Header(None)) -> UserResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="User not found.")
    return user_response(row)


@app.get("/users/me/settings", response_model=UserSettingsResponse)
def get_user_settings(authorization: str | None = Header(None)) -> UserSettingsResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="User not found.")
    return UserSettingsResponse(id=row["id"], email=row["email"], theme=row["theme"])


@app.put("/users/me/settings", response_model=UserSettingsResponse)
def update_user_settings(
    payload: UserSettingsPayload,
    authorization: str | None = Header(None),
) -> UserSettingsResponse:
    user_id = get_user_id(authorization)
    try:
        payload = UserSettingsPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        row = conn.execute(
            update(users)
            .where(users.c.id == user_id)
            .values(theme=payload.theme)
            .returning(users.c.id, users.c.email, users.c.theme)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="User not found.")
    return UserSettingsResponse(id=row["id"], email=row["email"], theme=row["theme"])


@app.get("/categories", response_model=list[CategoryResponse])
def list_categories(
    type: str | None = None,
    authorization: str | None = Header(None),
) -> list[CategoryResponse]:
    user_id = get_user_id(authorization)
    conditions = [categories.c.user_id == user_id]
    if type is not None:
        try:
            conditions.append(categories.c.type == TransactionType.validate(type))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        rows = conn.execute(
            select(categories)
            .where(*conditions)
            .order_by(categories.c.created_at.desc(), categories.c.id.desc())
        ).mappings().all()
    return [category_response(row) for row in rows]


@app.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(category_id: int, authorization: str | None = Header(None)) -> CategoryResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = get_owned_category(conn, user_id, category_id)
    return category_response(row)


@app.post("/categories", response_model=CategoryResponse)
def create_category(
    payload: CategoryPayload, authorization: str | None = Header(None)
) -> CategoryResponse:
    user_id = get_user_id(authorization)
    try:
        payload = CategoryPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        insert(categories)
        .values(user_id=user_id, name=payload.name, type=payload.type, color=payload.color)
        .returning(categories)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Category already exists.") from exc

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create category.")
    return category_response(row)


@app.put("/categories/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: int,
    payload: CategoryUpdatePayload,
    authorization: str | None = Header(None),
) -> CategoryResponse:
    user_id = get_user_id(authorization)
    try:
        with engine.begin() as conn:
            existing = get_owned_category(conn, user_id, category_id)
            try:
                merged = CategoryPayload.validate_payload(
                    merge_payload(CategoryPayload, existing, payload)
                )
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            row = conn.execute(
                update(categories)
                .where(categories.c.id == category_id, categories.c.user_id == user_id)
                .values(name=merged.name, type=merged.type, color=merged.color)
                .returning(categories)
            ).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Category already exists.") from exc

    if not row:
        raise HTTPException(status_code=404, detail="Category not found.")
    return category_response(row)


@app.delete("/categories/{category_id}")
def delete_category(category_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        get_owned_category(conn, user_id, category_id)
        blockers = category_blockers(conn, user_id, category_id)
        if blockers:
            raise HTTPException(
                status_code=409,
                detail=f"Category is in use by {' and '.join(blockers)}.",
            )
        conn.execute(
            update(transactions)
            .where(transactions.c.user_id == user_id, transactions.c.category_id == category_id)
            .values(category_id=None)
        )
        conn.execute(
            categories.delete().where(
                categories.c.id == category_id, categories.c.user_id == user_id
            )
        )
    return {"status": "deleted"}


@app.get("/cards", response_model=list[CardResponse])
def list_cards(authorization: str | None = Header(None)) -> list[CardResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(credit_cards)
            .where(credit_cards.c.user_id == user_id)
            .order_by(credit_cards.c.created_at.desc(), credit_cards.c.id.desc())
        ).mappings().all()
    return [card_response(row) for row in rows]


@app.get("/cards/latest", response_model=CardResponse)
def latest_card(authorization: str | None = Header(None)) -> CardResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(
            select(credit_cards)
            .where(credit_cards.c.user_id == user_id, credit_cards.c.is_active.is_(True))
            .order_by(credit_cards.c.created_at.desc(), credit_cards.c.id.desc())
            .limit(1)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Card not found.")
    return card_response(row)


@app.get("/cards/{card_id}", response_model=CardResponse)
def get_card(card_id: int, authorization: str | None = Header(None)) -> CardResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(
            select(credit_cards).where(
                credit_cards.c.id == card_id, credit_cards.c.user_id == user_id
            )
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Card not found.")
    return card_response(row)


@app.get("/cards/{card_id}/statement", response_model=CardStatementResponse)
def card_statement(card_id: int, authorization: str | None = Header(None)) -> CardStatementResponse:
    user_id = get_user_id(authorization)
    today = date.today()
    with engine.begin() as conn:
        row = conn.execute(
            select(credit_cards).where(
                credit_cards.c.id == card_id, credit_cards.c.user_id == user_id
            )
        ).mappings().first()
        if not row:
            raise HTTPException(status_code=404, detail="Card not found.")
        statements = fetch_card_statements(conn, user_id, today)
    statement = statements.get(card_id, Decimal("0.00"))
    credit_limit = coerce_decimal(row["credit_limit"])
    return CardStatementResponse(
        card_id=card_id,
        month=today.strftime("%Y-%m"),
        statement=statement,
        credit_limit=credit_limit,
        available=credit_limit - statement,
    )


@app.post("/cards", response_model=CardResponse)
def create_card(payload: CardPayload, authorization: str | None = Header(None)) -> CardResponse:
    user_id = get_user_id(authorization)
    try:
        payload = CardPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        row = conn.execute(
            insert(credit_cards)
            .values(
                user_id=user_id,
                name=payload.name,
                credit_limit=payload.credit_limit,
                due_day=payload.due_day,
                color=payload.color,
                is_active=payload.is_active,
            )
            .returning(credit_cards)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create card.")
    return card_response(row)


@app.put("/cards/{card_id}", response_model=CardResponse)
def update_card(
    card_id: int,
    payload: CardUpdatePayload,
    authorization: str | None = Header(None),
) -> CardResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        existing = conn.execute(
            select(credit_cards).where(
                credit_cards.c.id == card_id, credit_cards.c.user_id == user_id
            )
        ).mappings().first()
        if not existing:
            raise HTTPException(status_code=404, detail="Card not found.")
        try:
            merged = CardPayload.validate_payload(merge_payload(CardPayload, existing, payload))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        row = conn.execute(
            update(credit_cards)
            .where(credit_cards.c.id == card_id, credit_cards.c.user_id == user_id)
            .values(
                name=merged.name,
                credit_limit=merged.credit_limit,
                due_day=merged.due_day,
                color=merged.color,
                is_active=merged.is_active,
            )
            .returning(credit_cards)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail="Card not found.")
    return card_response(row)


@app.delete("/cards/{card_id}")
def delete_card(card_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        ensure_owned_card(conn, user_id, card_id)
        goal_match = conn.execute(
            select(goals.c.id)
            .where(goals.c.user_id == user_id, goals.c.card_id == card_id)
            .limit(1)
        ).first()
        if goal_match:
            raise HTTPException(status_code=409, detail="Card is in use by goals.")
        conn.execute(
            update(transactions)
            .where(transactions.c.user_id == user_id, transactions.c.card_id == card_id)
            .values(card_id=None)
        )
        conn.execute(
            credit_cards.delete().where(
                credit_cards.c.id == card_id, credit_cards.c.user_id == user_id
            )
        )
    return {"status": "deleted"}


@app.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    type: str | None = None,
    category_id: int | None = None,
    card_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    method: str | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    authorization: str | None = Header(None),
) -> list[TransactionResponse]:
    user_id = get_user_id(authorization)
    conditions = [transactions.c.user_id == user_id]
    if type is not None:
        try:
            conditions.append(transactions.c.type == TransactionType.validate(type))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    if category_id is not None:
        conditions.append(transactions.c.category_id == category_id)
    if card_id is not None:
        conditions.append(transactions.c.card_id == card_id)
    if start_date is not None:
        conditions.append(transactions.c.date >= start_date)
    if end_date is not None:
        conditions.append(transactions.c.date <= end_date)
    if min_amount is not None:
        conditions.append(transactions.c.amount >= min_amount)
    if max_amount is not None:
        conditions.append(transactions.c.amount <= max_amount)
    if method:
        conditions.append(transactions.c.method == method)
    if search:
        conditions.append(transactions.c.name.icontains(search.strip(), autoescape=True))

    if sort_by is None:
        ordering = (transactions.c.created_at.desc(), transactions.c.id.desc())
    elif sort_by in TRANSACTION_SORTS:
        ordering = TRANSACTION_SORTS[sort_by]
    else:
        raise HTTPException(status_code=400, detail="Invalid sort option.")

    with engine.begin() as conn:
        rows = conn.execute(
            transaction_query().where(*conditions).order_by(*ordering)
        ).mappings().all()
    return [transaction_response(row) for row in rows]


@app.get("/transactions/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: int, authorization: str | None = Header(None)
) -> TransactionResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_transaction(conn, user_id, transaction_id)
    if not row:
        raise HTTPException(status_code=404, detail="Transaction not found.")
    return transaction_response(row)


@app.post("/transactions", response_model=TransactionResponse)
def create_transaction(
    payload: TransactionPayload, authorization: str | None = Header(None)
) -> TransactionResponse:
    user_id = get_user_id(authorization)
    try:
        payload = TransactionPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        category = get_owned_category(conn, user_id, payload.category_id)
        ensure_owned_card(conn, user_id, payload.card_id)
        ensure_owned_recurring(conn, user_id, payload.recurring_id)
        transaction_id = conn.execute(
            insert(transactions)
            .values(
                user_id=user_id,
                name=payload.name,
                amount=payload.amount,
                type=payload.type,
                category_id=payload.category_id,
                category=category["name"] if category else None,
                category_color=category["color"] if category else None,
                method=payload.method,
                card_id=payload.card_id,
                recurring_id=payload.recurring_id,
                date=payload.date,
                realized=payload.realized,
            )
            .returning(transactions.c.id)
        ).scalar_one()
        row = fetch_transaction(conn, user_id, transaction_id)

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create transaction.")
    return transaction_response(row)


@app.put("/transactions/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdatePayload,
    authorization: str | None = Header(None),
) -> TransactionResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        existing = conn.execute(
            select(transactions).where(
                transactions.c.id == transaction_id, transactions.c.user_id == user_id
            )
        ).mappings().first()
        if not existing:
            raise HTTPException(status_code=404, detail="Transaction not found.")
        try:
            merged = TransactionPayload.validate_payload(
                merge_payload(TransactionPayload, existing, payload)
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        category = get_owned_category(conn, user_id, merged.category_id)
        ensure_owned_card(conn, user_id, merged.card_id)
        conn.execute(
            update(transactions)
            .where(transactions.c.id == transaction_id, transactions.c.user_id == user_id)
            .values(
                name=merged.name,
                amount=merged.amount,
                type=merged.type,
                category_id=merged.category_id,
                category=category["name"] if category else None,
                category_color=category["color"] if category else None,
                method=merged.method,
                card_id=merged.card_id,
                date=merged.date,
                realized=merged.realized,
            )
        )
        row = fetch_transaction(conn, user_id, transaction_id)

    if not row:
        raise HTTPException(status_code=404, detail="Transaction not found.")
    return transaction_response(row)


@app.delete("/transactions/{transaction_id}")
def delete_transaction(transaction_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    stmt = transactions.delete().where(
        transactions.c.id == transaction_id, transactions.c.user_id == user_id
    )
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Transaction not found.")
    return {"status": "deleted"}


@app.get("/recurring-transactions", response_model=list[RecurringResponse])
def list_recurring(authorization: str | None = Header(None)) -> list[RecurringResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(recurring_transactions)
            .where(recurring_transactions.c.user_id == user_id)
            .order_by(
                recurring_transactions.c.created_at.desc(),
                recurring_transactions.c.id.desc(),
            )
        ).mappings().all()
    return [recurring_response(row) for row in rows]


@app.post("/recurring-transactions/execute", response_model=RecurringExecutionResponse)
def execute_recurring(authorization: str | None = Header(None)) -> RecurringExecutionResponse:
    user_id = get_user_id(authorization)
    return RecurringExecutionResponse(
        executed=execute_recurring_transactions(user_id, date.today())
    )


@app.get(
    "/recurring-transactions/upcoming",
    response_model=list[UpcomingOccurrenceResponse],
)
def upcoming_recurring(
    start_date: date | None = None,
    end_date: date | None = None,
    authorization: str | None = Header(None),
) -> list[UpcomingOccurrenceResponse]:
    user_id = get_user_id(authorization)
    range_start = start_date or date.today()
    range_end = end_date or range_start + timedelta(days=UPCOMING_DEFAULT_DAYS)
    with engine.begin() as conn:
        rows = conn.execute(
            select(recurring_transactions).where(
                recurring_transactions.c.user_id == user_id,
                recurring_transactions.c.is_active.is_(True),
            )
        ).mappings().all()

    templates = [
        RecurringTemplate(
            id=row["id"],
            name=row["name"],
            amount=row["amount"],
            type=row["type"],
            frequency=row["frequency"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            last_execution=row["last_execution"],
            is_active=row["is_active"],
        )
        for row in rows
    ]
    try:
        projections = project_upcoming_for_all(templates, range_start, range_end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [
        UpcomingOccurrenceResponse(
            recurring_id=entry.recurring_id,
            name=entry.name,
            date=entry.date,
            amount=entry.amount,
            type=entry.transaction_type,
        )
        for entry in projections
    ]


@app.get("/recurring-transactions/{recurring_id}", response_model=RecurringResponse)
def get_recurring(recurring_id: int, authorization: str | None = Header(None)) -> RecurringResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(
            select(recurring_transactions).where(
                recurring_transactions.c.id == recurring_id,
                recurring_transactions.c.user_id == user_id,
            )
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Recurring transaction not found.")
    return recurring_response(row)


@app.post("/recurring-transactions", response_model=RecurringResponse)
def create_recurring(
    payload: RecurringPayload, authorization: str | None = Header(None)
) -> RecurringResponse:
    user_id = get_user_id(authorization)
    try:
        payload = RecurringPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        get_owned_category(conn, user_id, payload.category_id)
        row = conn.execute(
            insert(recurring_transactions)
            .values(
                user_id=user_id,
                name=payload.name,
                amount=payload.amount,
                type=payload.type,
                category_id=payload.category_id,
                payment_method=payload.payment_method,
                frequency=payload.frequency,
                start_date=payload.start_date,
                end_date=payload.end_date,
                is_active=payload.is_active,
            )
            .returning(recurring_transactions)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create recurring transaction.")
    return recurring_response(row)


@app.put("/recurring-transactions/{recurring_id}", response_model=RecurringResponse)
def update_recurring(
    recurring_id: int,
    payload: RecurringUpdatePayload,
    authorization: str | None = Header(None),
) -> RecurringResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        existing = conn.execute(
            select(recurring_transactions).where(
                recurring_transactions.c.id == recurring_id,
                recurring_transactions.c.user_id == user_id,
            )
        ).mappings().first()
        if not existing:
            raise HTTPException(status_code=404, detail="Recurring transaction not found.")
        try:
            merged = RecurringPayload.validate_payload(
                merge_payload(RecurringPayload, existing, payload)
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        get_owned_category(conn, user_id, merged.category_id)
        row = conn.execute(
            update(recurring_transactions)
            .where(
                recurring_transactions.c.id == recurring_id,
                recurring_transactions.c.user_id == user_id,
            )
            .values(
                name=merged.name,
                amount=merged.amount,
                type=merged.type,
                category_id=merged.category_id,
                payment_method=merged.payment_method,
                frequency=merged.frequency,
                start_date=merged.start_date,
                end_date=merged.end_date,
                is_active=merged.is_active,
            )
            .returning(recurring_transactions)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail="Recurring transaction not found.")
    return recurring_response(row)


@app.patch("/recurring-transactions/{recurring_id}/status", response_model=RecurringResponse)
def set_recurring_status(
    recurring_id: int,
    payload: RecurringStatusPayload,
    authorization: str | None = Header(None),
) -> RecurringResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(
            update(recurring_transactions)
            .where(
                recurring_transactions.c.id == recurring_id,
                recurring_transactions.c.user_id == user_id,
            )
            .values(is_active=payload.is_active)
            .returning(recurring_transactions)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Recurring transaction not found.")
    return recurring_response(row)


@app.delete("/recurring-transactions/{recurring_id}")
def delete_recurring(recurring_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        ensure_owned_recurring(conn, user_id, recurring_id)
        conn.execute(
            update(transactions)
            .where(
                transactions.c.user_id == user_id,
                transactions.c.recurring_id == recurring_id,
            )
            .values(recurring_id=None)
        )
        conn.execute(
            recurring_transactions.delete().where(
                recurring_transactions.c.id == recurring_id,
                recurring_transactions.c.user_id == user_id,
            )
        )
    return {"status": "deleted"}


@app.get("/goals", response_model=list[GoalResponse])
def list_goals(authorization: str | None = Header(None)) -> list[GoalResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(goals)
            .where(goals.c.user_id == user_id)
            .order_by(goals.c.created_at.desc(), goals.c.id.desc())
        ).mappings().all()
    return [goal_response(row) for row in rows]


@app.get("/goals/progress", response_model=list[GoalProgressResponse])
def list_goal_progress(authorization: str | None = Header(None)) -> list[GoalProgressResponse]:
    user_id = get_user_id(authorization)
    today = date.today()
    with engine.begin() as conn:
        rows = conn.execute(
            select(goals)
            .where(goals.c.user_id == user_id, goals.c.is_active.is_(True))
            .order_by(goals.c.created_at.desc(), goals.c.id.desc())
        ).mappings().all()
        return [calculate_goal_progress(conn, user_id, row, today)[0] for row in rows]


@app.get("/goals/alerts", response_model=list[GoalAlertResponse])
def list_goal_alerts(authorization: str | None = Header(None)) -> list[GoalAlertResponse]:
    user_id = get_user_id(authorization)
    today = date.today()
    alerts: list[GoalAlertResponse] = []
    with engine.begin() as conn:
        rows = conn.execute(
            select(goals).where(
                goals.c.user_id == user_id,
                goals.c.is_active.is_(True),
                goals.c.alerts_enabled.is_(True),
            )
        ).mappings().all()
        for row in rows:
            response, goal, progress = calculate_goal_progress(conn, user_id, row, today)
            if not should_alert(goal, progress):
                continue
            alerts.append(
                GoalAlertResponse(
                    **response.model_dump(),
                    message=format_alert_message(goal, progress),
                )
            )
    return alerts


@app.get("/goals/{goal_id}", response_model=GoalResponse)
def get_goal(goal_id: int, authorization: str | None = Header(None)) -> GoalResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(
            select(goals).where(goals.c.id == goal_id, goals.c.user_id == user_id)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Goal not found.")
    return goal_response(row)


@app.get("/goals/{goal_id}/progress", response_model=GoalProgressResponse)
def get_goal_progress(
    goal_id: int, authorization: str | None = Header(None)
) -> GoalProgressResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(
            select(goals).where(goals.c.id == goal_id, goals.c.user_id == user_id)
        ).mappings().first()
        if not row:
            raise HTTPException(status_code=404, detail="Goal not found.")
        return calculate_goal_progress(conn, user_id, row, date.today())[0]


@app.post("/goals", response_model=GoalResponse)
def create_goal(payload: GoalPayload, authorization: str | None = Header(None)) -> GoalResponse:
    user_id = get_user_id(authorization)
    try:
        payload = GoalPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        get_owned_category(conn, user_id, payload.category_id)
        ensure_owned_card(conn, user_id, payload.card_id)
        row = conn.execute(
            insert(goals)
            .values(
                user_id=user_id,
                name=payload.name,
                goal_type=payload.goal_type,
                target_value=payload.target_value,
                is_percentage=payload.is_percentage,
                period=payload.period,
                start_date=payload.start_date,
                end_date=payload.end_date,
                category_id=payload.category_id,
                card_id=payload.card_id,
                alerts_enabled=payload.alerts_enabled,
                alert_levels=payload.alert_levels,
                is_active=payload.is_active,
            )
            .returning(goals)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create goal.")
    return goal_response(row)


@app.put("/goals/{goal_id}", response_model=GoalResponse)
def update_goal(
    goal_id: int,
    payload: GoalUpdatePayload,
    authorization: str | None = Header(None),
) -> GoalResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        existing = conn.execute(
            select(goals).where(goals.c.id == goal_id, goals.c.user_id == user_id)
        ).mappings().first()
        if not existing:
            raise HTTPException(status_code=404, detail="Goal not found.")
        try:
            merged = GoalPayload.validate_payload(merge_payload(GoalPayload, existing, payload))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        get_owned_category(conn, user_id, merged.category_id)
        ensure_owned_card(conn, user_id, merged.card_id)
        row = conn.execute(
            update(goals)
            .where(goals.c.id == goal_id, goals.c.user_id == user_id)
            .values(
                name=merged.name,
                goal_type=merged.goal_type,
                target_value=merged.target_value,
                is_percentage=merged.is_percentage,
                period=merged.period,
                start_date=merged.start_date,
                end_date=merged.end_date,
                category_id=merged.category_id,
                card_id=merged.card_id,
                alerts_enabled=merged.alerts_enabled,
                alert_levels=merged.alert_levels,
                is_active=merged.is_active,
            )
            .returning(goals)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail="Goal not found.")
    return goal_response(row)


@app.delete("/goals/{goal_id}")
def delete_goal(goal_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    stmt = goals.delete().where(goals.c.id == goal_id, goals.c.user_id == user_id)
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Goal not found.")
    return {"status": "deleted"}


@app.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    month: int | None = None,
    year: int | None = None,
    period: str = Query("monthly"),
    authorization: str | None = Header(None),
) -> DashboardResponse:
    user_id = get_user_id(authorization)
    today = date.today()
    selected_month = month if month is not None else today.month
    selected_year = year if year is not None else today.year

    execute_recurring_transactions(user_id, today)

    with engine.begin() as conn:
        txn_rows = conn.execute(
            transaction_query()
            .where(transactions.c.user_id == user_id)
            .order_by(transactions.c.date.desc(), transactions.c.id.desc())
        ).mappings().all()
        card_rows = conn.execute(
            select(credit_cards)
            .where(credit_cards.c.user_id == user_id)
            .order_by(credit_cards.c.created_at.desc(), credit_cards.c.id.desc())
        ).mappings().all()
        statements = fetch_card_statements(conn, user_id, today)

    rows_by_id = {row["id"]: row for row in txn_rows}
    items = [
        DashboardTransaction(
            id=row["id"],
            amount=row["amount"],
            type=row["type"],
            date=row["date"],
            realized=row["realized"],
            category=row["linked_category"] or row["category"],
            category_color=row["linked_category_color"] or row["category_color"],
        )
        for row in txn_rows
    ]
    try:
        normalized_period = normalize_period(period)
        result = build_dashboard(
            items,
            DashboardFilter(month=selected_month, year=selected_year, period=normalized_period),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    summary = result.summary
    cards = []
    for row in card_rows:
        statement = statements.get(row["id"], Decimal("0.00"))
        credit_limit = coerce_decimal(row["credit_limit"])
        cards.append(
            DashboardCardResponse(
                **card_response(row).model_dump(),
                statement=statement,
                available=credit_limit - statement,
            )
        )
    return DashboardResponse(
        month=selected_month,
        year=selected_year,
        period=normalized_period,
        summary=SummaryResponse(
            incomes=coerce_decimal(summary.incomes),
            expenses=coerce_decimal(summary.expenses),
            balance=coerce_decimal(summary.balance),
            receivable=coerce_decimal(summary.receivable),
            payable=coerce_decimal(summary.payable),
            previous_month_balance=coerce_decimal(summary.previous_month_balance),
        ),
        line_chart=LineChartResponse(
            labels=result.line_chart.labels,
            incomes=[coerce_decimal(value) for value in result.line_chart.incomes],
            expenses=[coerce_decimal(value) for value in result.line_chart.expenses],
        ),
        expense_pie=pie_response(result.expense_pie),
        income_pie=pie_response(result.income_pie),
        recent_transactions=[
            transaction_response(rows_by_id[item.id]) for item in result.recent_transactions
        ],
        credit_cards=cards,
    )


@app.get("/reports/summary", response_model=ReportSummaryResponse)
def report_summary(
    period: str = Query("current_month"),
    type: str = Query("all"),
    category_id: int | None = None,
    card_id: int | None = None,
    method: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    authorization: str | None = Header(None),
) -> ReportSummaryResponse:
    user_id = get_user_id(authorization)
    _, txn_type, range_start, range_end = resolve_report_filters(
        period, type, start_date, end_date, date.today()
    )
    with engine.begin() as conn:
        rows = fetch_report_rows(
            conn, user_id, txn_type, range_start, range_end, category_id, card_id, method
        )
    return report_summary_response(summarize(report_items(rows)))


@app.get("/reports", response_model=ReportResponse)
def report_data(
    period: str = Query("current_month"),
    type: str = Query("all"),
    category_id: int | None = None,
    card_id: int | None = None,
    method: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    authorization: str | None = Header(None),
) -> ReportResponse:
    user_id = get_user_id(authorization)
    _, txn_type, range_start, range_end = resolve_report_filters(
        period, type, start_date, end_date, date.today()
    )
    with engine.begin() as conn:
        rows = fetch_report_rows(
            conn, user_id, txn_type, range_start, range_end, category_id, card_id, method
        )
        category_rows = conn.execute(
            select(categories)
            .where(categories.c.user_id == user_id)
            .order_by(categories.c.created_at.desc(), categories.c.id.desc())
        ).mappings().all()
        card_rows = conn.execute(
            select(credit_cards)
            .where(credit_cards.c.user_id == user_id)
            .order_by(credit_cards.c.created_at.desc(), credit_cards.c.id.desc())
        ).mappings().all()
    return ReportResponse(
        start_date=range_start,
        end_date=range_end,
        transactions=[transaction_response(row) for row in rows],
        categories=[category_response(row) for row in category_rows],
        cards=[card_response(row) for row in card_rows],
        summary=report_summary_response(summarize(report_items(rows))),
    )


@app.get("/reports/trends", response_model=ReportTrendsResponse | None)
def report_trends(
    period: str = Query("current_month"),
    type: str = Query("all"),
    category_id: int | None = None,
    card_id: int | None = None,
    method: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    authorization: str | None = Header(None),
) -> ReportTrendsResponse | None:
    user_id = get_user_id(authorization)
    today = date.today()
    normalized_period, txn_type, range_start, range_end = resolve_report_filters(
        period, type, start_date, end_date, today
    )
    previous_range = previous_report_range(normalized_period, today)
    if previous_range is None:
        return None
    with engine.begin() as conn:
        current_rows = fetch_report_rows(
            conn, user_id, txn_type, range_start, range_end, category_id, card_id, method
        )
        previous_rows = fetch_report_rows(
            conn, user_id, txn_type, previous_range[0], previous_range[1],
            category_id, card_id, method,
        )
    trends = calculate_trends(
        summarize(report_items(current_rows)), summarize(report_items(previous_rows))
    )
    return ReportTrendsResponse(
        income=TrendResponse(value=trends.income.value, is_positive=trends.income.is_positive),
        expense=TrendResponse(value=trends.expense.value, is_positive=trends.expense.is_positive),
        balance=TrendResponse(value=trends.balance.value, is_positive=trends.balance.is_positive),
    )


@app.get("/reports/export.csv")
def report_export(
    period: str = Query("current_month"),
    type: str = Query("all"),
    category_id: int | None = None,
    card_id: int | None = None,
    method: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    authorization: str | None = Header(None),
) -> Response:
    user_id = get_user_id(authorization)
    normalized_period, txn_type, range_start, range_end = resolve_report_filters(
        period, type, start_date, end_date, date.today()
    )
    with engine.begin() as conn:
        rows = fetch_report_rows(
            conn, user_id, txn_type, range_start, range_end, category_id, card_id, method
        )
    return Response(
        content=export_csv(report_items(rows)),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="fintrack-{normalized_period}.csv"'
        },
    )
