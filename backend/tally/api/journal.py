"""Journal endpoints: business operations, manual adjustments, listing and voids."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tally.database import get_db, run_in_transaction
from tally.models.gl import EntryType, JournalEntryStatus
from tally.models.tenant import Tenant
from tally.services.error_logger import log_error
from tally.services.errors import AlreadyExists, InvalidAccount, TallyError, http_error
from tally.services.gl import journal_engine, posting
from tally.services.gl.operations import Operation
from tally.tenant_utils import get_current_tenant, today

logger = logging.getLogger(__name__)
router = APIRouter()


# ===================================================================
# Pydantic Schemas
# ===================================================================

class JournalLineResponse(BaseModel):
    line_number: int
    account_code: str
    account_name: str
    debit_amount: Decimal
    credit_amount: Decimal
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class JournalEntryResponse(BaseModel):
    id: int
    number: int
    entry_date: date
    entry_type: EntryType
    description: str
    total_debit: Decimal
    total_credit: Decimal
    status: JournalEntryStatus
    source_reference: Optional[str] = None
    operation_type: Optional[str] = None
    third_party_id: Optional[int] = None
    reversal_of_id: Optional[int] = None
    reversed_by_id: Optional[int] = None
    lines: list[JournalLineResponse] = []

    model_config = {"from_attributes": True}


class JournalEntryListResponse(BaseModel):
    items: list[JournalEntryResponse]
    total: int
    page: int
    page_size: int


class ManualLineRequest(BaseModel):
    account_code: str
    debit: Decimal = Decimal("0.00")
    credit: Decimal = Decimal("0.00")
    description: Optional[str] = None


class ManualEntryRequest(BaseModel):
    description: str = Field(min_length=1)
    entry_date: Optional[date] = None
    entry_type: EntryType = EntryType.ADJUSTMENT
    reference: Optional[str] = Field(default=None, max_length=100)
    lines: list[ManualLineRequest] = Field(min_length=2)


class VoidRequest(BaseModel):
    reason: str = Field(min_length=1)
    entry_date: Optional[date] = None


# ===================================================================
# Business operations
# ===================================================================

@router.post("/operations")
async def record_operation(
    operation: Operation,
    response: Response,
    dry_run: bool = Query(False),
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Post one business operation as a balanced journal entry.

    A repeated ``operation_id`` returns the entry already posted (200);
    a new posting answers 201.  ``dry_run`` previews the lines.
    """
    try:
        try:
            if dry_run:
                return await posting.record_operation(
                    db, tenant_id=tenant.id, operation=operation, dry_run=True
                )
            result = await run_in_transaction(db, lambda s: posting.record_operation(
                s, tenant_id=tenant.id, operation=operation
            ))
            response.status_code = 201 if result.created else 200
            return JournalEntryResponse.model_validate(result.entry)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.journal", function_name="record_operation", tenant_id=tenant.id)
        raise


# ===================================================================
# Journal entries
# ===================================================================

@router.post("/journal-entries", response_model=JournalEntryResponse, status_code=201)
async def create_manual_entry(
    data: ManualEntryRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Post a hand-built entry (opening balances, adjustments, closings)."""
    try:
        try:
            if data.entry_type == EntryType.OPERATIONAL:
                raise InvalidAccount("Operational entries are created through /operations")
            lines = [
                journal_engine.LineDraft(
                    account_code=ln.account_code,
                    debit=ln.debit,
                    credit=ln.credit,
                    description=ln.description,
                )
                for ln in data.lines
            ]

            async def _post(s: AsyncSession):
                if data.reference and await journal_engine.find_by_source_reference(
                    s, tenant.id, data.reference
                ):
                    raise AlreadyExists(f"Reference {data.reference} is already posted")
                return await journal_engine.create_journal_entry(
                    s,
                    tenant_id=tenant.id,
                    lines=lines,
                    description=data.description,
                    entry_date=data.entry_date or today(),
                    entry_type=data.entry_type,
                    source_reference=data.reference,
                )

            return await run_in_transaction(db, _post)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.journal", function_name="create_manual_entry", tenant_id=tenant.id)
        raise


@router.get("/journal-entries", response_model=JournalEntryListResponse)
async def list_journal_entries(
    status: Optional[str] = None,
    operation_type: Optional[str] = None,
    third_party_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            st = JournalEntryStatus(status) if status else None
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status '{status}'")
        items, total = await journal_engine.list_journal_entries(
            db,
            tenant.id,
            status=st,
            operation_type=operation_type,
            third_party_id=third_party_id,
            date_from=date_from,
            date_to=date_to,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        return JournalEntryListResponse(
            items=[JournalEntryResponse.model_validate(e) for e in items],
            total=total,
            page=page,
            page_size=page_size,
        )
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.journal", function_name="list_journal_entries", tenant_id=tenant.id)
        raise


@router.get("/journal-entries/{entry_id}", response_model=JournalEntryResponse)
async def get_journal_entry(
    entry_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            return await journal_engine.get_journal_entry(db, tenant.id, entry_id)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.journal", function_name="get_journal_entry", tenant_id=tenant.id)
        raise


@router.post("/journal-entries/{entry_id}/void", response_model=JournalEntryResponse)
async def void_journal_entry(
    entry_id: int,
    data: VoidRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Void a posted entry; returns the reversing entry."""
    try:
        try:
            return await run_in_transaction(db, lambda s: posting.void_entry(
                s,
                tenant_id=tenant.id,
                entry_id=entry_id,
                reason=data.reason,
                entry_date=data.entry_date or today(),
            ))
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.journal", function_name="void_journal_entry", tenant_id=tenant.id)
        raise
