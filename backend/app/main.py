from __future__ import annotations

import base64
import binascii
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from backend.app.container import Container, build_container
from expense_flow.config import load_config
from expense_flow.errors import ExpenseFlowError, ExternalSinkError, ValidationError
from expense_flow.lifecycle import ExpenseSubmission
from expense_flow.logging_config import setup_logging
from expense_flow.models import Attachment, User
from expense_flow.ui import present_expense, present_stats, present_user


class LoginRequest(BaseModel):
    email: str


class RegisterRequest(BaseModel):
    email: str
    name: str
    department: Optional[str] = None


class ExpenseCreate(BaseModel):
    description: Optional[str] = None
    category: Optional[str] = None
    expense_date: Optional[str] = None
    amount: Optional[str] = None
    mileage_distance: Optional[str] = None
    mileage_start: Optional[str] = None
    mileage_end: Optional[str] = None
    receipt_url: Optional[str] = None
    receipt_file_name: Optional[str] = None
    receipt_file_type: Optional[str] = None
    receipt_file_data: Optional[str] = None

    def to_submission(self) -> ExpenseSubmission:
        return ExpenseSubmission(
            description=self.description,
            category=self.category,
            expense_date=self.expense_date,
            amount=self.amount,
            mileage_distance=self.mileage_distance,
            mileage_start=self.mileage_start,
            mileage_end=self.mileage_end,
            receipt_url=self.receipt_url,
            receipt_file_name=self.receipt_file_name,
        )

    def to_attachment(self) -> Optional[Attachment]:
        if not (self.receipt_file_data and self.receipt_file_type and self.receipt_file_name):
            return None
        try:
            content = base64.b64decode(self.receipt_file_data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("receipt_file_data", "must be base64 encoded") from exc
        return Attachment(filename=self.receipt_file_name, content_type=self.receipt_file_type, content=content)


class StatusUpdate(BaseModel):
    status: str
    approval_note: Optional[str] = None


async def get_container(request: Request) -> Container:
    return request.app.state.container


async def current_user(
    authorization: Optional[str] = Header(default=None),
    container: Container = Depends(get_container),
) -> User:
    token = authorization.removeprefix("Bearer ").strip() if authorization else None
    return container.auth.authenticate(token)


async def expense_flow_error_handler(request: Request, exc: ExpenseFlowError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def create_app(container: Optional[Container] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            config = load_config()
            setup_logging(config.logging.level, config.logging.logs_path)
            app.state.container = build_container(config)
        yield

    app = FastAPI(title="Expense Flow API", lifespan=lifespan)
    app.state.container = container
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ExpenseFlowError, expense_flow_error_handler)

    @app.post("/api/auth/login")
    async def login(payload: LoginRequest, container: Container = Depends(get_container)):
        token, user = container.auth.login(payload.email)
        return {"token": token, "user": present_user(user)}

    @app.post("/api/auth/register")
    async def register(payload: RegisterRequest, container: Container = Depends(get_container)):
        token, user = container.auth.register(payload.email, payload.name, payload.department)
        return {"token": token, "user": present_user(user)}

    @app.get("/api/auth/me")
    async def me(user: User = Depends(current_user)):
        return present_user(user)

    @app.post("/api/auth/logout")
    async def logout(
        authorization: Optional[str] = Header(default=None),
        user: User = Depends(current_user),
        container: Container = Depends(get_container),
    ):
        container.auth.logout(authorization.removeprefix("Bearer ").strip())
        return {"message": "Logged out"}

    @app.get("/api/expenses")
    async def list_expenses(
        status: Optional[str] = None,
        employee: Optional[int] = None,
        user: User = Depends(current_user),
        container: Container = Depends(get_container),
    ):
        expenses = container.service.list_expenses(user, status=status, employee_id=employee)
        return [present_expense(expense) for expense in expenses]

    @app.get("/api/expenses/{expense_id}")
    async def get_expense(
        expense_id: int,
        user: User = Depends(current_user),
        container: Container = Depends(get_container),
    ):
        return present_expense(container.service.get_expense(expense_id))

    @app.post("/api/expenses", status_code=201)
    async def create_expense(
        payload: ExpenseCreate,
        user: User = Depends(current_user),
        container: Container = Depends(get_container),
    ):
        expense = await container.service.create_expense(user, payload.to_submission(), payload.to_attachment())
        return present_expense(expense)

    @app.patch("/api/expenses/{expense_id}/status")
    async def decide_expense(
        expense_id: int,
        payload: StatusUpdate,
        user: User = Depends(current_user),
        container: Container = Depends(get_container),
    ):
        expense = await container.service.decide_expense(expense_id, payload.status, user, payload.approval_note)
        return present_expense(expense)

    @app.get("/api/stats")
    async def stats(user: User = Depends(current_user), container: Container = Depends(get_container)):
        return present_stats(container.service.get_stats())

    @app.get("/api/mileage-rate")
    async def mileage_rate(user: User = Depends(current_user), container: Container = Depends(get_container)):
        return {"rate": str(container.service.get_mileage_rate())}

    @app.post("/api/admin/sync-sheets")
    async def sync_sheets(user: User = Depends(current_user), container: Container = Depends(get_container)):
        report = await container.service.trigger_ledger_resync(user)
        return {"message": "Sheets sync completed", **asdict(report)}

    @app.post("/api/admin/sync-emails")
    async def sync_emails(user: User = Depends(current_user), container: Container = Depends(get_container)):
        report = await container.service.trigger_inbox_ingest(user)
        return {"message": "Email sync completed", **asdict(report)}

    @app.post("/api/admin/resend-notifications")
    async def resend_notifications(
        user: User = Depends(current_user),
        container: Container = Depends(get_container),
    ):
        report = await container.service.trigger_notification_resend(user)
        return {"message": "Notification resend completed", **asdict(report)}

    @app.get("/receipts/{stored_name}")
    async def receipt_file(stored_name: str, container: Container = Depends(get_container)):
        try:
            path = container.file_host.upload_path(stored_name)
        except ExternalSinkError:
            raise HTTPException(status_code=404, detail="Receipt not found")
        if not path.is_file():
            raise HTTPException(status_code=404, detail="Receipt not found")
        return FileResponse(path)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
