# app/tasks/websockets/ws_manager.py
import logging
from typing import Dict, Optional, Set
from fastapi import WebSocket

ALL_CHANNELS = "*"


class ConnectionManager:
    """
    Registro de conexões WebSocket agrupadas por canal.

    Conexões no canal "*" recebem todas as mensagens; as demais só as do
    seu canal (ex.: o id do pedido).
    """

    def __init__(self, name: str):
        self.name = name
        self.channels: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channel: str = ALL_CHANNELS):
        await websocket.accept()
        self.channels.setdefault(channel, set()).add(websocket)
        logging.info(f"WEBSOCKET >>> Conexão aberta em {self.name}/{channel}")

    def disconnect(self, websocket: WebSocket, channel: str = ALL_CHANNELS):
        connections = self.channels.get(channel)
        if connections:
            connections.discard(websocket)
            if not connections:
                del self.channels[channel]
        logging.info(f"WEBSOCKET >>> Conexão encerrada em {self.name}/{channel}")

    async def broadcast(self, message: dict, channel: Optional[str] = None):
        targets = set(self.channels.get(ALL_CHANNELS, ()))
        if channel and channel != ALL_CHANNELS:
            targets |= self.channels.get(channel, set())

        for websocket in targets:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logging.warning(f"WEBSOCKET >>> Falha ao enviar para {self.name}, removendo conexão - {e}")
                for connections in self.channels.values():
                    connections.discard(websocket)


order_ws_manager = ConnectionManager("orders")
payment_ws_manager = ConnectionManager("payment")
