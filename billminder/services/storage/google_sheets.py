"""
Google Sheets Remote Store

DESIGN DECISION: Google Sheets is the remote mirror because:
1. Users can see their synced data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions; an upsert is read-then-write, last writer wins
- Limited query capabilities (we filter in Python)

The mirror is best-effort. Callers on the user path catch StorageError;
the local store stays authoritative. gspread is blocking, so the async
methods hand each sheet call to asyncio.to_thread.
"""

import asyncio
import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import Retrying, retry, stop_after_attempt, wait_exponential

from billminder.config import GoogleSheetsSettings, get_settings
from billminder.models.audit import AuditEvent, AuditEventType, AuditSeverity
from billminder.models.bill import (
    Bill,
    BillStatus,
    Entitlement,
    Frequency,
    UserProfile,
    utcnow,
)
from billminder.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    RemoteStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Bills sheet
BILL_COLUMNS = [
    "id",
    "user_id",
    "name",
    "amount",
    "currency",
    "due_date",
    "frequency",
    "interval_months",
    "status",
    "last_paid_date",
    "transaction_ref",
    "payment_link",
    "require_proof",
    "is_disputed",
    "waiver_amount",
    "admin_notes",
    "created_at",
    "updated_at",
]

# Column mappings for Profiles sheet
PROFILE_COLUMNS = [
    "id",
    "display_name",
    "phone_number",
    "entitlement",
    "currency",
    "is_disabled",
    "is_restricted",
    "restriction_reason",
    "entitlement_updated_at",
    "created_at",
    "updated_at",
]

# Column mappings for SystemConfig sheet
CONFIG_COLUMNS = ["key", "value_json", "updated_at"]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "actor",
    "entity_type",
    "entity_id",
    "description",
    "details_json",
    "old_value_json",
    "new_value_json",
    "reason",
    "error_message",
    "is_user_action",
]


def _cell(row: list, index: int, default: str = "") -> str:
    """Handle short rows gracefully."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def _flag(value: str) -> bool:
    return value.strip().lower() == "true"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with a header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_bills_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.bills_sheet_name, BILL_COLUMNS)

    def get_profiles_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.profiles_sheet_name, PROFILE_COLUMNS)

    def get_config_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.config_sheet_name, CONFIG_COLUMNS, rows=100)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self._worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def _find_row(sheet: gspread.Worksheet, key: str) -> tuple[Optional[int], list[list[str]]]:
    """1-based row index whose first cell equals `key`, plus all values."""
    all_rows = sheet.get_all_values()
    for idx, row in enumerate(all_rows[1:], start=2):  # row 1 is the header
        if row and row[0] == key:
            return idx, all_rows
    return None, all_rows


def _upsert_row(sheet: gspread.Worksheet, key: str, row: list) -> None:
    idx, _ = _find_row(sheet, key)
    if idx is None:
        sheet.append_row(row, value_input_option="RAW")
    else:
        sheet.update(
            range_name=f"A{idx}",
            values=[row],
            value_input_option="RAW",
        )


class GoogleSheetsRemoteStore(RemoteStoreInterface):
    """
    Google Sheets implementation of the remote mirror.

    One bill per row, one profile per row, one config key per row.
    Proof images are not mirrored; they stay on the device.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    @staticmethod
    def _bill_to_row(bill: Bill) -> list:
        return [
            bill.id,
            bill.user_id,
            bill.name,
            str(bill.amount) if bill.amount is not None else "",
            bill.currency or "",
            bill.due_date.isoformat(),
            bill.frequency.value,
            str(bill.interval_months) if bill.interval_months else "",
            bill.status.value,
            _iso(bill.last_paid_date),
            bill.transaction_ref or "",
            bill.payment_link or "",
            str(bill.require_proof),
            str(bill.is_disputed),
            str(bill.waiver_amount) if bill.waiver_amount is not None else "",
            bill.admin_notes or "",
            bill.created_at.isoformat(),
            bill.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_bill(row: list) -> Bill:
        return Bill(
            id=_cell(row, 0),
            user_id=_cell(row, 1),
            name=_cell(row, 2),
            amount=Decimal(_cell(row, 3)) if _cell(row, 3) else None,
            currency=_cell(row, 4) or None,
            due_date=datetime.fromisoformat(_cell(row, 5)),
            frequency=Frequency(_cell(row, 6)),
            interval_months=int(_cell(row, 7)) if _cell(row, 7) else None,
            status=BillStatus(_cell(row, 8, BillStatus.UPCOMING.value)),
            last_paid_date=datetime.fromisoformat(_cell(row, 9)) if _cell(row, 9) else None,
            transaction_ref=_cell(row, 10) or None,
            payment_link=_cell(row, 11) or None,
            require_proof=_flag(_cell(row, 12, "True")),
            is_disputed=_flag(_cell(row, 13, "False")),
            waiver_amount=Decimal(_cell(row, 14)) if _cell(row, 14) else None,
            admin_notes=_cell(row, 15) or None,
            created_at=datetime.fromisoformat(_cell(row, 16)),
            updated_at=datetime.fromisoformat(_cell(row, 17)),
        )

    @staticmethod
    def _profile_to_row(profile: UserProfile) -> list:
        return [
            profile.uid,
            profile.display_name or "",
            profile.phone_number or "",
            profile.entitlement.value,
            profile.currency,
            str(profile.is_disabled),
            str(profile.is_restricted),
            profile.restriction_reason or "",
            _iso(profile.entitlement_updated_at),
            profile.created_at.isoformat(),
            utcnow().isoformat(),
        ]

    @staticmethod
    def _row_to_profile_fields(row: list) -> dict[str, Any]:
        return {
            "uid": _cell(row, 0),
            "display_name": _cell(row, 1) or None,
            "phone_number": _cell(row, 2) or None,
            "entitlement": Entitlement(_cell(row, 3, Entitlement.FREE.value)),
            "currency": _cell(row, 4) or None,
            "is_disabled": _flag(_cell(row, 5, "False")),
            "is_restricted": _flag(_cell(row, 6, "False")),
            "restriction_reason": _cell(row, 7) or None,
            "entitlement_updated_at": (
                datetime.fromisoformat(_cell(row, 8)) if _cell(row, 8) else None
            ),
            "created_at": datetime.fromisoformat(_cell(row, 9)) if _cell(row, 9) else None,
        }

    def _all_bills(self) -> list[Bill]:
        sheet = self._client.get_bills_sheet()
        bills = []
        for row in sheet.get_all_values()[1:]:  # Skip header
            if not row or not row[0]:
                continue
            try:
                bills.append(self._row_to_bill(row))
            except (ValueError, TypeError) as e:
                logger.warning("remote_bill_row_skipped", bill_id=row[0], error=str(e))
        return bills

    async def _in_thread(self, action: str, func: Callable[..., Any], *args: Any) -> Any:
        """Run blocking gspread work on a worker thread, off the event loop."""
        try:
            return await asyncio.to_thread(func, *args)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to {action}: {e}")

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def fetch_bills(self, user_id: str) -> list[Bill]:
        bills = await self._in_thread("fetch bills", self._all_bills)
        return [bill for bill in bills if bill.user_id == user_id]

    def _write_bill(self, bill: Bill) -> None:
        _upsert_row(self._client.get_bills_sheet(), bill.id, self._bill_to_row(bill))

    async def upsert_bill(self, bill: Bill) -> None:
        await self._in_thread("upsert bill", self._write_bill, bill)

    def _remove_bill(self, bill_id: str) -> bool:
        sheet = self._client.get_bills_sheet()
        idx, _ = _find_row(sheet, bill_id)
        if idx is None:
            return False
        sheet.delete_rows(idx)
        return True

    async def delete_bill(self, bill_id: str) -> bool:
        return await self._in_thread("delete bill", self._remove_bill, bill_id)

    async def fetch_all_bills(self) -> list[Bill]:
        bills = await self._in_thread("fetch bills", self._all_bills)
        # Newest first
        bills.sort(key=lambda b: b.created_at, reverse=True)
        return bills

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def _read_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        idx, all_rows = _find_row(self._client.get_profiles_sheet(), user_id)
        if idx is None:
            return None
        return self._row_to_profile_fields(all_rows[idx - 1])

    async def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        fields = await self._in_thread("get profile", self._read_profile, user_id)
        if fields is None:
            return None
        return {k: v for k, v in fields.items() if v is not None}

    def _write_profile(self, profile: UserProfile) -> None:
        _upsert_row(self._client.get_profiles_sheet(), profile.uid, self._profile_to_row(profile))

    async def upsert_profile(self, profile: UserProfile) -> None:
        await self._in_thread("upsert profile", self._write_profile, profile)

    def _profile_rows(self) -> list[list[str]]:
        return self._client.get_profiles_sheet().get_all_values()[1:]

    async def fetch_all_profiles(self) -> list[UserProfile]:
        rows = await self._in_thread("fetch profiles", self._profile_rows)

        profiles = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                fields = self._row_to_profile_fields(row)
                profiles.append(UserProfile(
                    **{k: v for k, v in fields.items() if v is not None}
                ))
            except (ValueError, TypeError) as e:
                logger.warning("remote_profile_row_skipped", uid=row[0], error=str(e))
        return profiles

    # -------------------------------------------------------------------------
    # System configuration
    # -------------------------------------------------------------------------

    def _config_rows(self) -> list[list[str]]:
        return self._client.get_config_sheet().get_all_values()[1:]

    async def get_system_config(self) -> dict[str, Any]:
        rows = await self._in_thread("read system config", self._config_rows)

        config = {}
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                config[row[0]] = json.loads(_cell(row, 1, "null"))
            except json.JSONDecodeError:
                config[row[0]] = _cell(row, 1)
        return config

    def _write_config(self, key: str, value: Any) -> None:
        _upsert_row(
            self._client.get_config_sheet(),
            key,
            [key, json.dumps(value), utcnow().isoformat()],
        )

    async def upsert_system_config(self, key: str, value: Any) -> None:
        await self._in_thread("update system config", self._write_config, key, value)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only. Appends go through a single background
    worker so a slow or unreachable sheet never holds up the caller; the
    worker keeps events in submission order. Reads and purge flush the
    queue first.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        retry_attempts: int = 3,
    ):
        self._client = client or GoogleSheetsClient()
        self._retrying = Retrying(
            stop=stop_after_attempt(max(retry_attempts, 1)),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="audit-sheet")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self.failed_appends = 0

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def from_json(index: int) -> Any:
            raw = _cell(row, index)
            return json.loads(raw) if raw else None

        return AuditEvent(
            event_id=_cell(row, 0),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            actor=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=_cell(row, 6) or None,
            description=_cell(row, 7),
            details=from_json(8) or {},
            old_value=from_json(9),
            new_value=from_json(10),
            reason=_cell(row, 11) or None,
            error_message=_cell(row, 12) or None,
            is_user_action=_flag(_cell(row, 13, "False")),
        )

    def _all_events(self) -> list[AuditEvent]:
        self.flush()
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, TypeError):
                continue
        return events

    def _append_row(self, row: list) -> None:
        self._client.get_audit_sheet().append_row(row, value_input_option="RAW")

    def _write(self, event: AuditEvent) -> None:
        try:
            self._retrying(self._append_row, event.to_sheets_row())
        except Exception as e:
            self.failed_appends += 1
            logger.warning(
                "audit_sheet_append_failed",
                event_id=str(event.event_id),
                error=str(e),
            )

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def append_event(self, event: AuditEvent) -> bool:
        """Queue an audit event for the sheet. Never raises, never waits."""
        try:
            future = self._executor.submit(self._write, event)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(
                "audit_sheet_append_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return True

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until queued appends have been written (or dropped)."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    def purge(self) -> int:
        self.flush()
        try:
            sheet = self._client.get_audit_sheet()
            count = len(sheet.get_all_values()) - 1
            if count > 0:
                sheet.delete_rows(2, count + 1)
            return max(count, 0)
        except Exception as e:
            raise StorageError(f"Failed to purge audit log: {e}")
