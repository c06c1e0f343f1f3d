import asyncio
import logging
from typing import Awaitable, Callable, Optional
import httpx

from app.configuration.settings import Configuration
from app.enums.order_status import OrderStatus
from app.enums.payment_status import FINAL_PAYMENT_STATUSES, PaymentStatus
from app.services.payment.reconciler import StatusSnapshot

configuration = Configuration()

StatusChecker = Callable[[str], Awaitable[StatusSnapshot]]
UpdateCallback = Callable[[StatusSnapshot], None]


class HttpStatusChecker:
    """Consulta POST /payment/status da API, como faz a tela de checkout."""

    def __init__(self, base_url: str = None, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or configuration.base_url).rstrip("/")
        self.timeout = timeout
        self.client = client

    async def __call__(self, order_id: str) -> StatusSnapshot:
        url = f"{self.base_url}/payment/status"
        payload = {"orderId": order_id}

        if self.client is not None:
            response = await self.client.post(url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)
        response.raise_for_status()

        data = response.json()
        return StatusSnapshot(
            order_id=data.get("orderId", order_id),
            payment_status=PaymentStatus(data["paymentStatus"]),
            order_status=OrderStatus(data["orderStatus"]),
        )


class PaymentStatusPoller:
    """
    Acompanha o status de um pagamento em intervalo fixo até um desfecho.

    A primeira consulta acontece depois de um intervalo. Falhas de uma
    rodada são registradas e a consulta segue no mesmo ritmo. Usado como
    `async with`, a tarefa é cancelada na saída do bloco.
    """

    def __init__(
        self,
        order_id: str,
        check_status: Optional[StatusChecker] = None,
        on_update: Optional[UpdateCallback] = None,
        interval: Optional[float] = None,
    ):
        self.order_id = order_id
        self.check_status = check_status or HttpStatusChecker()
        self.on_update = on_update
        self.interval = configuration.payment_status_poll_seconds if interval is None else interval
        self.last_snapshot: Optional[StatusSnapshot] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logging.info(f"PAGAMENTO >>> Acompanhando status do pedido {self.order_id} a cada {self.interval}s")

    async def stop(self):
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logging.info(f"PAGAMENTO >>> Acompanhamento do pedido {self.order_id} encerrado")

    async def wait(self) -> Optional[StatusSnapshot]:
        if self._task is not None:
            await self._task
        return self.last_snapshot

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def _tick(self) -> Optional[StatusSnapshot]:
        try:
            snapshot = await self.check_status(self.order_id)
        except Exception as e:
            logging.warning(f"PAGAMENTO >>> Falha ao consultar status do pedido {self.order_id} - {e}")
            return None

        self.last_snapshot = snapshot
        if self.on_update is not None:
            try:
                self.on_update(snapshot)
            except Exception as e:
                logging.error(f"PAGAMENTO >>> Erro no callback de status do pedido {self.order_id} - {e}", exc_info=True)
        return snapshot

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            snapshot = await self._tick()
            if snapshot is not None and snapshot.payment_status in FINAL_PAYMENT_STATUSES:
                logging.info(f"PAGAMENTO >>> Pedido {self.order_id} finalizado com {snapshot.payment_status.value}")
                return
