from __future__ import annotations

from fastapi import APIRouter, Query

from market_pay.dependencies import parse_uuid
from market_pay.services.calculator import preview_expression
from market_pay.services.change_feed import TRACKED_TABLES, change_feed

router = APIRouter(prefix='/api', tags=['api'])


@router.get('/changes')
def changes(cursor: int = 0, tables: str | None = None, vendor_id: str | None = None) -> dict:
    watched = [table for table in (tables or '').split(',') if table in TRACKED_TABLES] or list(TRACKED_TABLES)
    latest, changed = change_feed.changes_since(
        cursor,
        tables=watched,
        vendor_id=parse_uuid(vendor_id, label='vendor'),
    )
    return {'cursor': latest, 'changed': changed, 'reload': bool(changed)}


@router.get('/calculator/preview')
def calculator_preview(expr: str = Query('', max_length=200)) -> dict:
    preview = preview_expression(expr)
    return {'expression': preview.expression, 'result': preview.result}
