"""Wires the settlement components together for the app and the CLI."""

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from tradedesk.config import Settings, settings as default_settings
from tradedesk.engine.scheduler import TradeScheduler
from tradedesk.engine.settlement import SettlementCoordinator
from tradedesk.services.alerts import OperatorAlerts
from tradedesk.services.notifications import MessageBroker, NotificationFanout
from tradedesk.services.price_reference import HyperliquidPriceReference, PriceReference


@dataclass
class Runtime:
    engine: Engine
    prices: PriceReference
    broker: MessageBroker
    alerts: OperatorAlerts
    coordinator: SettlementCoordinator
    scheduler: TradeScheduler


def build_runtime(
    engine: Engine,
    config: Settings = default_settings,
    prices: PriceReference | None = None,
) -> Runtime:
    prices = prices or HyperliquidPriceReference(config.hyperliquid_base_url, config.asset_tickers)
    broker = MessageBroker()
    alerts = OperatorAlerts(config.telegram_bot_token, config.telegram_chat_ids)
    coordinator = SettlementCoordinator(engine, prices, NotificationFanout(broker))
    scheduler = TradeScheduler(
        coordinator,
        engine,
        alerts,
        retry_backoff_seconds=config.price_retry_backoff_seconds,
        stuck_grace_seconds=config.stuck_trade_grace_seconds,
        sweep_interval_seconds=config.stuck_sweep_interval_seconds,
    )
    return Runtime(engine, prices, broker, alerts, coordinator, scheduler)
