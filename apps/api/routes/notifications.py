import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from apps.api.deps import get_reconciliation_engine
from domains.merchant.store import MerchantStore
from domains.notification.callback import build_callback_payload
from domains.notification.reconciler import ReconcileResult, ReconciliationEngine
from domains.notification.schemas import NotificationOutcome, NotificationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["notifications"])


async def read_notification_payload(request: Request) -> Dict[str, Any]:
    """
    The forwarder posts whatever the phone gave it; keep it as-is for the
    audit trail even when it is not a JSON object.
    """
    body = await request.body()
    if not body:
        return {}
    try:
        data = json.loads(body)
    except ValueError:
        return {"raw": body.decode("utf-8", errors="replace")}
    if isinstance(data, dict):
        return data
    return {"payload": data}


async def schedule_callback(
    request: Request,
    engine: ReconciliationEngine,
    result: ReconcileResult,
    background_tasks: BackgroundTasks,
) -> None:
    if result.order is None or result.merchant_id is None:
        return
    merchant = await MerchantStore(engine.session).get(result.merchant_id)
    if merchant is None or not merchant.webhook_url:
        return
    background_tasks.add_task(
        request.app.state.notifier.send,
        merchant.webhook_url,
        merchant.api_secret,
        build_callback_payload(result.outcome.value, result.order, result.transaction),
    )


@router.post(
    "/notifications",
    response_model=NotificationResult,
    response_model_exclude_none=True,
)
async def ingest_notification(
    request: Request,
    background_tasks: BackgroundTasks,
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),  # noqa: B008
) -> NotificationResult:
    # 一律回 200：forwarder 不會重試，UNMAPPED 也不能當錯誤
    payload = await read_notification_payload(request)
    result = await engine.reconcile(payload)

    if result.outcome in (NotificationOutcome.COMPLETED, NotificationOutcome.LATE_PAYMENT):
        await schedule_callback(request, engine, result, background_tasks)

    return result.to_response()
