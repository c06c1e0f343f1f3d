# app/tasks/websockets/routes.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.auth.auth import AdminAuth
from app.core.exceptions.app_exception import AppHttpException
from app.helpers.payment.validators import is_valid_order_id
from app.tasks.websockets.ws_manager import order_ws_manager, payment_ws_manager

router = APIRouter()
admin_auth = AdminAuth()


@router.websocket("/ws/orders")
async def websocket_orders(websocket: WebSocket, token: str = ""):
    try:
        admin_auth.decode_admin_token(token)
    except AppHttpException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await order_ws_manager.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        order_ws_manager.disconnect(websocket)


@router.websocket("/ws/payment/{order_id}")
async def websocket_payment(websocket: WebSocket, order_id: str):
    if not is_valid_order_id(order_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await payment_ws_manager.connect(websocket, order_id)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        payment_ws_manager.disconnect(websocket, order_id)
