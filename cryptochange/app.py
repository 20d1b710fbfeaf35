"""
Точка входа: фоновое обновление цен и разовые команды конвертера
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from typing import List, Optional

from cryptochange.config.settings import ConverterConfig
from cryptochange.errors import ParseError, ValidationError
from cryptochange.models import Currency
from cryptochange.services.coingecko import CoinGeckoClient
from cryptochange.services.rate_store import build_rate_store
from cryptochange.services.refresh_scheduler import RefreshScheduler
from cryptochange.services.session import ConverterSession
from cryptochange.utils.humanize import format_elapsed
from cryptochange.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def _print_result(session: ConverterSession):
    for code, text in session.result.formatted().items():
        print(f"{code:>4}: {text}")


async def run_forever(cfg=ConverterConfig):
    """Обновляет цены, пока процесс не получит SIGINT/SIGTERM"""
    store = build_rate_store(cfg)
    session = ConverterSession(store)
    scheduler = RefreshScheduler(CoinGeckoClient(), store, cfg.REFRESH_INTERVAL, cfg.TICK_INTERVAL)

    scheduler.subscribe(session.apply_outcome)
    scheduler.subscribe_tick(lambda seconds: logger.debug(format_elapsed(seconds)))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: остается KeyboardInterrupt
            pass

    logger.info(f"Config: {cfg.get_config_summary()}")
    await scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()


async def convert_once(currency: Currency, amount: str, offline: bool = False, cfg=ConverterConfig) -> int:
    store = build_rate_store(cfg)
    scheduler = RefreshScheduler(CoinGeckoClient(), store, cfg.REFRESH_INTERVAL, cfg.TICK_INTERVAL)

    if not offline:
        outcome = await scheduler.refresh()
        if outcome and outcome.notice:
            print(outcome.notice, file=sys.stderr)

    session = ConverterSession(store, prices=scheduler.snapshot)
    session.edit(currency, amount)
    _print_result(session)
    print(format_elapsed(scheduler.seconds_since_last_success()))
    return 0


def set_rates(byn: str, rub: str, markup: str, cfg=ConverterConfig) -> int:
    session = ConverterSession(build_rate_store(cfg))
    try:
        session.save_rates(byn, rub, markup)
    except (ParseError, ValidationError) as e:
        print(e, file=sys.stderr)
        return 1
    print("Сохранено")
    return 0


def show_rates(cfg=ConverterConfig) -> int:
    store = build_rate_store(cfg)
    rates = store.load_rates()
    prices = store.load_cached_prices()
    last_success = store.load_last_success()

    print(f"BYN за 1 USD: {rates.byn_per_usd}")
    print(f"RUB за 1 USD: {rates.rub_per_usd}")
    print(f"Надбавка: {rates.markup}")
    for code, price in prices.as_dict().items():
        print(f"{code}: ${price}")

    seconds = None
    if last_success is not None:
        seconds = max(0, int(time.time() - last_success))
    print(format_elapsed(seconds))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cryptochange", description="BTC/LTC/XMR <-> BYN/RUB")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="обновлять цены в фоне")

    p_convert = sub.add_parser("convert", help="пересчитать сумму")
    p_convert.add_argument("currency", type=Currency.parse, help="BTC, LTC, XMR, BYN или RUB")
    p_convert.add_argument("amount")
    p_convert.add_argument("--offline", action="store_true", help="только кэшированные цены")

    p_rates = sub.add_parser("set-rates", help="сохранить курсы и надбавку")
    p_rates.add_argument("byn", help="BYN за 1 USD")
    p_rates.add_argument("rub", help="RUB за 1 USD")
    p_rates.add_argument("markup", help="надбавка, 1.10 = +10%%")

    sub.add_parser("show-rates", help="показать курсы и кэш цен")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(ConverterConfig.LOG_LEVEL, ConverterConfig.LOG_COLORED)

    if args.command == "run":
        try:
            asyncio.run(run_forever())
        except KeyboardInterrupt:
            pass
        return 0
    if args.command == "convert":
        return asyncio.run(convert_once(args.currency, args.amount, args.offline))
    if args.command == "set-rates":
        return set_rates(args.byn, args.rub, args.markup)
    return show_rates()


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
