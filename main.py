import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from starlette.middleware.sessions import SessionMiddleware

from amounts import format_money, format_percent, parse_amount
from analytics import FlowSummary, combined_balance, division_overviews
from api_client import ApiError, ApiUnavailable, SessionExpired, SpenderClient
from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from models import (
    ACCOUNT_COLORS,
    DEFAULT_ACCOUNT_COLOR,
    FILTER_CATEGORIES,
    TRANSACTION_CATEGORIES,
    AccountType,
    Division,
    LedgerTab,
    TransactionType,
)
from periods import TimeWindow
from schemas import (
    AccountIn,
    AccountUpdateIn,
    ForgotPasswordIn,
    LoginIn,
    RegisterIn,
    ResetPasswordIn,
    TransactionIn,
    TransferIn,
    UserInfo,
)
from services import (
    AccountService,
    AnalyticsFilters,
    AnalyticsService,
    AuthService,
    DivisionService,
    LedgerFilters,
    LedgerService,
)
from sessions import (
    LoginRequired,
    clear_user,
    csrf_nonce,
    current_user,
    flash,
    pop_flashes,
    require_user,
    store_user,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
settings = get_settings()

app = FastAPI(title="Spender")
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="spender_session",
    max_age=settings.session_max_age_secs,
    same_site="lax",
)
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=BASE_DIR / "templates")


def currency_filter(amount) -> str:
    return format_money(amount, currency=settings.currency, locale=settings.locale)


def percent_filter(value) -> str:
    return format_percent(value, locale=settings.locale)


templates.env.filters["currency"] = currency_filter
templates.env.filters["percent"] = percent_filter
templates.env.globals["Division"] = Division
templates.env.globals["LedgerTab"] = LedgerTab
templates.env.globals["AccountType"] = AccountType
templates.env.globals["TransactionType"] = TransactionType
templates.env.globals["FILTER_CATEGORIES"] = FILTER_CATEGORIES
templates.env.globals["TRANSACTION_CATEGORIES"] = TRANSACTION_CATEGORIES
templates.env.globals["ACCOUNT_COLORS"] = ACCOUNT_COLORS
templates.env.globals["DEFAULT_ACCOUNT_COLOR"] = DEFAULT_ACCOUNT_COLOR


def get_client(request: Request) -> SpenderClient:
    user = current_user(request)
    return SpenderClient.from_settings(token=user.token if user else None)


def get_anonymous_client() -> SpenderClient:
    # auth endpoints must never see a stale bearer token
    return SpenderClient.from_settings()


def get_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    return RedirectResponse(url=request.app.url_path_for("login_page"), status_code=303)


@app.exception_handler(SessionExpired)
async def session_expired_handler(request: Request, exc: SessionExpired):
    logger.info("session_expired: clearing stored user")
    clear_user(request)
    flash(request, "Session expired, please sign in again", "error")
    return RedirectResponse(url=request.app.url_path_for("login_page"), status_code=303)


def render(request: Request, template: str, context: dict[str, object]) -> HTMLResponse:
    ctx: dict[str, object] = {
        "user": current_user(request),
        "flashes": pop_flashes(request),
        "csrf_token": generate_csrf_token(csrf_nonce(request)),
    }
    ctx.update(context)
    return templates.TemplateResponse(request, template, ctx)


def check_csrf(request: Request, token: str) -> None:
    if not validate_csrf_token(token, csrf_nonce(request)):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def error_message(exc: Exception, fallback: str) -> str:
    if isinstance(exc, ValidationError):
        errors = exc.errors()
        if errors:
            message = str(errors[0].get("msg", fallback))
            return message.removeprefix("Value error, ")
        return fallback
    if isinstance(exc, ApiError):
        return exc.message or fallback
    if isinstance(exc, ApiUnavailable):
        return fallback
    return str(exc) or fallback


def redirect_to(request: Request, route: str, query: Optional[dict] = None, **params):
    url = request.app.url_path_for(route, **params)
    if query:
        url = f"{url}?{urlencode({k: v for k, v in query.items() if v})}"
    return RedirectResponse(url=str(url), status_code=303)


def parse_choice(enum_cls, value: Optional[str], default):
    if not value:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        return default


def window_from_request(request: Request) -> TimeWindow:
    try:
        return TimeWindow.from_strings(
            request.query_params.get("start"), request.query_params.get("end")
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def category_from_request(request: Request) -> Optional[str]:
    category = (request.query_params.get("category") or "").strip()
    if not category or category == "all":
        return None
    return category


def ledger_filters_from_request(request: Request) -> LedgerFilters:
    window = window_from_request(request)
    return LedgerFilters(
        division=parse_choice(
            Division, request.query_params.get("division"), Division.personal
        ),
        tab=parse_choice(LedgerTab, request.query_params.get("tab"), LedgerTab.all),
        category=category_from_request(request),
        start=window.start,
        end=window.end,
    )


def analytics_filters_from_request(request: Request) -> AnalyticsFilters:
    return AnalyticsFilters(
        division=parse_choice(
            Division, request.query_params.get("division"), Division.personal
        ),
        window=window_from_request(request),
        category=category_from_request(request),
    )


def transaction_from_form(
    *,
    description: str,
    amount: str,
    type: str,
    category: str,
    division: str,
    date_value: str,
    payment_method: str,
    account_id: str,
    today: date,
) -> TransactionIn:
    return TransactionIn(
        description=description,
        amount=parse_amount(amount),
        type=type,
        category=category or "other",
        division=division,
        date=date.fromisoformat(date_value) if date_value else today,
        payment_method=payment_method or "cash",
        account_id=account_id or None,
    )


# public pages


@app.get("/", response_class=HTMLResponse)
def home(request: Request):
    return render(request, "home.html", {})


@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request):
    return render(request, "login.html", {})


@app.post("/login")
def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    csrf_token: str = Form(""),
    client: SpenderClient = Depends(get_anonymous_client),
):
    check_csrf(request, csrf_token)
    try:
        user = AuthService(client).login(LoginIn(email=email, password=password))
    except (ValueError, ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Authentication failed"), "error")
        return redirect_to(request, "login_page")
    store_user(request, user)
    flash(request, f"Welcome back, {user.name}")
    return redirect_to(request, "dashboard")


@app.get("/register", response_class=HTMLResponse)
def register_page(request: Request):
    return render(request, "register.html", {})


@app.post("/register")
def register(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    confirm_password: str = Form(""),
    csrf_token: str = Form(""),
    client: SpenderClient = Depends(get_anonymous_client),
):
    check_csrf(request, csrf_token)
    try:
        data = RegisterIn(
            name=name,
            email=email,
            password=password,
            confirm_password=confirm_password,
        )
        user = AuthService(client).register(data)
    except (ValueError, ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Registration failed"), "error")
        return redirect_to(request, "register_page")
    store_user(request, user)
    flash(request, "Account created successfully")
    return redirect_to(request, "dashboard")


@app.get("/forgot-password", response_class=HTMLResponse)
def forgot_password_page(request: Request):
    submitted = request.query_params.get("sent") == "1"
    return render(request, "forgot_password.html", {"submitted": submitted})


@app.post("/forgot-password")
def forgot_password(
    request: Request,
    email: str = Form(""),
    csrf_token: str = Form(""),
    client: SpenderClient = Depends(get_anonymous_client),
):
    check_csrf(request, csrf_token)
    try:
        AuthService(client).request_password_reset(ForgotPasswordIn(email=email))
    except (ValueError, ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Password recovery failed"), "error")
        return redirect_to(request, "forgot_password_page")
    flash(request, "Recovery link sent, check your inbox")
    return redirect_to(request, "forgot_password_page", {"sent": "1"})


@app.get("/reset-password/{token}", response_class=HTMLResponse)
def reset_password_page(token: str, request: Request):
    return render(request, "reset_password.html", {"token": token})


@app.post("/reset-password/{token}")
def reset_password(
    token: str,
    request: Request,
    password: str = Form(""),
    confirm_password: str = Form(""),
    csrf_token: str = Form(""),
    client: SpenderClient = Depends(get_anonymous_client),
):
    check_csrf(request, csrf_token)
    try:
        data = ResetPasswordIn(password=password, confirm_password=confirm_password)
        AuthService(client).reset_password(token, data)
    except (ValueError, ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Password reset failed"), "error")
        return redirect_to(request, "reset_password_page", token=token)
    flash(request, "Password updated, please sign in")
    return redirect_to(request, "login_page")


@app.post("/logout")
def logout(request: Request, csrf_token: str = Form("")):
    check_csrf(request, csrf_token)
    clear_user(request)
    flash(request, "Logged out successfully")
    return redirect_to(request, "login_page")


# ledger


@app.get("/dashboard", response_class=HTMLResponse)
def dashboard(
    request: Request,
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
    today: date = Depends(get_today),
):
    filters = ledger_filters_from_request(request)
    try:
        page = max(int(request.query_params.get("page", "1")), 1)
    except ValueError:
        page = 1
    service = LedgerService(client)

    ledger = None
    summary = FlowSummary()
    sync_error = None
    try:
        ledger = service.page(filters, page)
        summary = service.overview(filters.division)
    except (ApiError, ApiUnavailable) as exc:
        logger.warning(f"dashboard_sync_failed: error={exc}")
        sync_error = "Could not reach the ledger service"

    editing = None
    edit_id = request.query_params.get("edit")
    if ledger and edit_id:
        editing = next((e for e in ledger.entries if e.id == edit_id), None)
    form_open = editing is not None or request.query_params.get("new") == "1"

    accounts = []
    if form_open:
        try:
            accounts = AccountService(client).list_all()
        except (ApiError, ApiUnavailable) as exc:
            logger.warning(f"account_sync_failed: error={exc}")

    filter_params = {
        "division": filters.division.value,
        "tab": filters.tab.value,
        "category": filters.category,
        "start": filters.start.isoformat() if filters.start else None,
        "end": filters.end.isoformat() if filters.end else None,
    }
    base_query = urlencode({k: v for k, v in filter_params.items() if v})
    return render(
        request,
        "dashboard.html",
        {
            "filters": filters,
            "ledger": ledger,
            "summary": summary,
            "sync_error": sync_error,
            "editing": editing,
            "form_open": form_open,
            "accounts": accounts,
            "today": today,
            "base_query": base_query,
        },
    )


@app.post("/transactions")
def create_transaction(
    request: Request,
    description: str = Form(""),
    amount: str = Form(""),
    type: str = Form("expense"),
    category: str = Form("other"),
    division: str = Form(Division.personal.value),
    date_value: str = Form("", alias="date"),
    payment_method: str = Form("cash"),
    account_id: str = Form(""),
    csrf_token: str = Form(""),
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
    today: date = Depends(get_today),
):
    check_csrf(request, csrf_token)
    back = {"division": division, "new": "1"}
    try:
        data = transaction_from_form(
            description=description,
            amount=amount,
            type=type,
            category=category,
            division=division,
            date_value=date_value,
            payment_method=payment_method,
            account_id=account_id,
            today=today,
        )
        LedgerService(client).create(data)
    except (ValueError, ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Transaction could not be saved"), "error")
        return redirect_to(request, "dashboard", back)
    flash(request, "Transaction recorded")
    return redirect_to(request, "dashboard", {"division": data.division.value})


@app.post("/transactions/{transaction_id}/edit")
def update_transaction(
    transaction_id: str,
    request: Request,
    description: str = Form(""),
    amount: str = Form(""),
    type: str = Form("expense"),
    category: str = Form("other"),
    division: str = Form(Division.personal.value),
    date_value: str = Form("", alias="date"),
    payment_method: str = Form("cash"),
    account_id: str = Form(""),
    csrf_token: str = Form(""),
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
    today: date = Depends(get_today),
):
    check_csrf(request, csrf_token)
    try:
        data = transaction_from_form(
            description=description,
            amount=amount,
            type=type,
            category=category,
            division=division,
            date_value=date_value,
            payment_method=payment_method,
            account_id=account_id,
            today=today,
        )
        LedgerService(client).update(transaction_id, data)
    except (ValueError, ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Transaction could not be updated"), "error")
        return redirect_to(request, "dashboard", {"division": division})
    flash(request, "Ledger updated")
    return redirect_to(request, "dashboard", {"division": data.division.value})


@app.post("/transactions/{transaction_id}/delete")
def delete_transaction(
    transaction_id: str,
    request: Request,
    division: str = Form(""),
    csrf_token: str = Form(""),
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
):
    check_csrf(request, csrf_token)
    try:
        LedgerService(client).delete(transaction_id)
    except ApiError as exc:
        if request.headers.get("HX-Request"):
            status = exc.status if exc.status >= 400 else 400
            raise HTTPException(status_code=status, detail=exc.message) from exc
        flash(request, error_message(exc, "Delete rejected"), "error")
        return redirect_to(request, "dashboard", {"division": division})
    except ApiUnavailable as exc:
        if request.headers.get("HX-Request"):
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        flash(request, "Could not reach the ledger service", "error")
        return redirect_to(request, "dashboard", {"division": division})
    if request.headers.get("HX-Request"):
        return Response(status_code=204, headers={"HX-Trigger": "transactions-changed"})
    flash(request, "Transaction deleted")
    return redirect_to(request, "dashboard", {"division": division})


# analytics


@app.get("/analytics", response_class=HTMLResponse)
def analytics_page(
    request: Request,
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
    today: date = Depends(get_today),
):
    filters = analytics_filters_from_request(request)
    report = None
    sync_error = None
    try:
        report = AnalyticsService(client).report(
            filters, today=today, locale=settings.locale
        )
    except (ApiError, ApiUnavailable) as exc:
        logger.warning(f"analytics_sync_failed: error={exc}")
        sync_error = "Sync interrupted."

    peak = 0
    if report and report.series:
        peak = max(max(p.income, p.expense) for p in report.series)
    return render(
        request,
        "analytics.html",
        {
            "filters": filters,
            "report": report,
            "summary": report.summary if report else FlowSummary(),
            "peak": peak,
            "sync_error": sync_error,
        },
    )


@app.get("/api/analytics/series")
def api_analytics_series(
    request: Request,
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
    today: date = Depends(get_today),
):
    filters = analytics_filters_from_request(request)
    try:
        report = AnalyticsService(client).report(
            filters, today=today, locale=settings.locale
        )
    except ApiError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc
    except ApiUnavailable as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if report.range_error:
        raise HTTPException(status_code=400, detail=report.range_error)
    return {
        "division": filters.division.value,
        "points": [point.as_dict() for point in report.series],
        "summary": {
            "income": float(report.summary.income),
            "expense": float(report.summary.expense),
            "savings": float(report.summary.balance),
        },
    }


@app.get("/divisions", response_class=HTMLResponse)
def divisions_page(
    request: Request,
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
):
    sync_error = None
    try:
        overviews = DivisionService(client).overviews()
    except (ApiError, ApiUnavailable) as exc:
        logger.warning(f"divisions_sync_failed: error={exc}")
        sync_error = "Division sync interrupted"
        overviews = division_overviews([], [])
    return render(
        request,
        "divisions.html",
        {
            "overviews": overviews,
            "combined_balance": combined_balance(overviews),
            "sync_error": sync_error,
        },
    )


# accounts


@app.get("/accounts", response_class=HTMLResponse)
def accounts_page(
    request: Request,
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
):
    service = AccountService(client)
    accounts = []
    net_worth = 0
    sync_error = None
    try:
        accounts = service.list_all()
        net_worth = service.net_worth()
    except (ApiError, ApiUnavailable) as exc:
        logger.warning(f"accounts_sync_failed: error={exc}")
        sync_error = "Could not load accounts"

    by_id = {account.id: account for account in accounts}
    transfer_source = by_id.get(request.query_params.get("transfer", ""))
    settings_target = by_id.get(request.query_params.get("settings", ""))
    return render(
        request,
        "accounts.html",
        {
            "accounts": accounts,
            "net_worth": net_worth,
            "sync_error": sync_error,
            "transfer_source": transfer_source,
            "settings_target": settings_target,
            "adding": request.query_params.get("new") == "1",
        },
    )


@app.post("/accounts")
def create_account(
    request: Request,
    name: str = Form(""),
    type: str = Form(AccountType.bank.value),
    balance: str = Form(""),
    currency: str = Form("INR"),
    color: str = Form(DEFAULT_ACCOUNT_COLOR),
    csrf_token: str = Form(""),
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
):
    check_csrf(request, csrf_token)
    try:
        data = AccountIn(
            name=name.strip(),
            type=type,
            balance=parse_amount(balance, allow_negative=True) if balance else 0,
            currency=currency or "INR",
            color=color or DEFAULT_ACCOUNT_COLOR,
        )
        AccountService(client).create(data)
    except (ValueError, ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Account could not be created"), "error")
        return redirect_to(request, "accounts_page", {"new": "1"})
    flash(request, "Account created")
    return redirect_to(request, "accounts_page")


@app.post("/accounts/{account_id}")
def update_account(
    account_id: str,
    request: Request,
    name: str = Form(""),
    color: str = Form(""),
    csrf_token: str = Form(""),
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
):
    check_csrf(request, csrf_token)
    try:
        AccountService(client).update(
            account_id, AccountUpdateIn(name=name.strip(), color=color)
        )
    except (ValueError, ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Account could not be updated"), "error")
        return redirect_to(request, "accounts_page", {"settings": account_id})
    flash(request, "Account updated")
    return redirect_to(request, "accounts_page")


@app.post("/accounts/{account_id}/delete")
def delete_account(
    account_id: str,
    request: Request,
    csrf_token: str = Form(""),
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
):
    check_csrf(request, csrf_token)
    try:
        AccountService(client).delete(account_id)
    except (ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Account could not be deleted"), "error")
        return redirect_to(request, "accounts_page")
    if request.headers.get("HX-Request"):
        return Response(status_code=204, headers={"HX-Trigger": "accounts-changed"})
    flash(request, "Account deleted")
    return redirect_to(request, "accounts_page")


@app.post("/accounts/{account_id}/transfer")
def transfer_between_accounts(
    account_id: str,
    request: Request,
    to_account_id: str = Form(""),
    amount: str = Form(""),
    csrf_token: str = Form(""),
    user: UserInfo = Depends(require_user),
    client: SpenderClient = Depends(get_client),
    today: date = Depends(get_today),
):
    check_csrf(request, csrf_token)
    try:
        if not to_account_id:
            raise ValueError("Choose a target account")
        data = TransferIn(to_account_id=to_account_id, amount=parse_amount(amount))
        AccountService(client).transfer(account_id, data, today=today)
    except (ValueError, ApiError, ApiUnavailable) as exc:
        flash(request, error_message(exc, "Transfer failed"), "error")
        return redirect_to(request, "accounts_page", {"transfer": account_id})
    flash(request, "Transfer completed")
    return redirect_to(request, "accounts_page")


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
