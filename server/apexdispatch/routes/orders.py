from typing import List, Literal

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from apexdispatch.deps import get_coordinator
from apexdispatch.models import ClaimOutcome, WorkerRef
from apexdispatch.schemas import (
    ContactUpdate,
    CreateOrder,
    CreateOrderOut,
    OrderOut,
    StatsOut,
    TakeOrder,
    TakeOrderOut,
    UploadPhoto,
    UploadPhotoOut,
)
from apexdispatch.services.coordinator import OrderCoordinator
from apexdispatch.services.exporter import orders_csv

router = APIRouter()


@router.post("/create-order", response_model=CreateOrderOut)
async def create_order(payload: CreateOrder, coord: OrderCoordinator = Depends(get_coordinator)):
    created = await coord.create_order(payload.model_dump())
    return {"success": True, "orderId": created.order.id, "broadcastLink": created.broadcast_link}


@router.post("/take-order", response_model=TakeOrderOut)
async def take_order(payload: TakeOrder, coord: OrderCoordinator = Depends(get_coordinator)):
    worker = WorkerRef(id=payload.masterId, name=payload.masterName or "")
    result = await coord.claim_order(payload.orderId, worker)
    body = {
        "success": result.succeeded,
        "outcome": result.outcome.value,
        "orderId": payload.orderId,
        "notified": result.notified,
    }
    # losing the race is an answer, not an error
    if result.outcome is ClaimOutcome.CONFLICT:
        return JSONResponse(body, status_code=409)
    if result.outcome is ClaimOutcome.NOT_FOUND:
        return JSONResponse(body, status_code=404)
    return body


@router.post("/upload-photo", response_model=UploadPhotoOut)
async def upload_photo(payload: UploadPhoto, coord: OrderCoordinator = Depends(get_coordinator)):
    order = await coord.submit_photo(payload.orderId, payload.type, payload.photoUrl, worker_id=payload.masterId)
    return {"success": True, "orderId": order.id, "status": order.status}


@router.get("/stats", response_model=StatsOut)
async def stats(source: Literal["store", "ledger"] = "store", coord: OrderCoordinator = Depends(get_coordinator)):
    return await coord.stats(source)


@router.get("/orders", response_model=List[OrderOut])
async def list_orders(coord: OrderCoordinator = Depends(get_coordinator)):
    return [o.to_dict() for o in await coord.list_orders()]


# declared before /orders/{order_id} so the literal path wins
@router.get("/orders/export.csv")
async def export_csv(coord: OrderCoordinator = Depends(get_coordinator)):
    data = orders_csv(reversed(await coord.list_orders()))
    headers = {"Content-Disposition": 'attachment; filename="orders.csv"'}
    return Response(content=data, headers=headers, media_type="text/csv")


@router.get("/orders/{order_id}", response_model=OrderOut)
async def get_order(order_id: str, coord: OrderCoordinator = Depends(get_coordinator)):
    return (await coord.get_order(order_id)).to_dict()


@router.post("/orders/{order_id}/rebroadcast", response_model=CreateOrderOut)
async def rebroadcast(order_id: str, coord: OrderCoordinator = Depends(get_coordinator)):
    created = await coord.rebroadcast(order_id)
    return {
        "success": created.broadcast is not None,
        "orderId": created.order.id,
        "broadcastLink": created.broadcast_link,
    }


@router.patch("/orders/{order_id}/contact", response_model=OrderOut)
async def amend_contact(
    order_id: str,
    payload: ContactUpdate,
    coord: OrderCoordinator = Depends(get_coordinator),
):
    fields = payload.model_dump(exclude_none=True)
    return (await coord.amend_contact(order_id, fields)).to_dict()
