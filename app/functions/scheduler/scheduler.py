# app/functions/scheduler/scheduler.py
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from app.configuration.settings import Configuration
from app.functions.payment.payment_sweep import reconcile_pending_payments

configuration = Configuration()


def start_scheduler():
    scheduler = BackgroundScheduler(timezone="UTC")

    # Confere pagamentos pendentes no Mercado Pago
    scheduler.add_job(
        reconcile_pending_payments,
        "interval",
        minutes=configuration.payment_sweep_minutes,
        id="reconcile_pending_payments",
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logging.info(f"AGENDADOR >>> Varredura de pagamentos a cada {configuration.payment_sweep_minutes} minutos")
    return scheduler
