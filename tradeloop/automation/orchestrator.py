"""Orchestrator - runs the agent loop over the configured symbols.

Each batch:
1. Backs up the state file
2. Skips symbols whose latest candle already has a recorded decision
3. Runs one AgentLoop per symbol (own conversation, shared cache/store)
4. Bumps the run counter

A failing symbol is logged with its turn and cause; the batch continues.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from dotenv import load_dotenv

from tradeloop.ai.providers.base import ModelError
from tradeloop.ai.tools.market import analysis_key, normalize_symbol
from tradeloop.ai.types import BotResult
from tradeloop.config import AppConfig
from tradeloop.context import AppContext
from tradeloop.market_data.base import ProviderError
from tradeloop.persistence.context import generate_context_summary
from tradeloop.persistence.store import PersistenceError, PersistenceStore

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Configuration for one orchestrator process."""

    symbols: list[str] = field(default_factory=lambda: ["BTCUSDC"])

    # Turn budget per symbol (None = AppConfig.bot_max_turns)
    max_turns: Optional[int] = None

    # Symbols analysed at the same time
    concurrency: int = 1

    # Seconds between batches in loop mode
    poll_interval: float = 300.0

    # Stop after N batches (None = run forever)
    max_iterations: Optional[int] = None

    skip_duplicates: bool = True


@dataclass
class SymbolOutcome:
    symbol: str
    result: Optional[BotResult] = None
    skipped: bool = False
    error: Optional[str] = None
    turn: int = 0

    @property
    def ok(self) -> bool:
        return self.result is not None


class Orchestrator:
    """Drives batches of symbol analyses against one AppContext."""

    def __init__(self, context: AppContext, config: Optional[OrchestratorConfig] = None) -> None:
        self.context = context
        self.config = config or OrchestratorConfig(symbols=context.config.pairs())
        self._running = False
        self._iteration = 0

    @property
    def iteration(self) -> int:
        return self._iteration

    async def _already_decided(self, symbol: str) -> bool:
        try:
            latest = await self.context.cache.latest(analysis_key(symbol, self.context.config.trading_interval))
        except ProviderError as exc:
            logger.warning("Could not check latest candle for %s: %s", symbol, exc)
            return False
        if latest is None:
            return False
        return self.context.store.state.has_decision_for_timestamp(symbol, latest.close_time)

    async def _process_symbol(self, symbol: str, semaphore: asyncio.Semaphore) -> SymbolOutcome:
        async with semaphore:
            if self.config.skip_duplicates and await self._already_decided(symbol):
                logger.info("Skipping %s: latest candle already has a decision", symbol)
                return SymbolOutcome(symbol=symbol, skipped=True)

            agent = self.context.agent(self.config.max_turns)
            logger.info("Analysing %s", symbol)
            try:
                result = await agent.run_analysis(symbol)
            except (ModelError, ProviderError) as exc:
                logger.error("Analysis of %s aborted on turn %d: %s", symbol, agent.turn, exc)
                return SymbolOutcome(symbol=symbol, error=str(exc), turn=agent.turn)
            except Exception as exc:
                logger.exception("Unexpected error analysing %s on turn %d", symbol, agent.turn)
                return SymbolOutcome(symbol=symbol, error=str(exc), turn=agent.turn)

            action = result.decision.describe() if result.decision else "no decision"
            logger.info("Finished %s in %d turn(s): %s", symbol, result.turns_used, action)
            return SymbolOutcome(symbol=symbol, result=result, turn=result.turns_used)

    async def run_once(self) -> list[SymbolOutcome]:
        """Run one batch over all configured symbols."""
        self._iteration += 1
        logger.info("=== Batch %d: %s ===", self._iteration, ", ".join(self.config.symbols))

        try:
            self.context.store.backup()
        except PersistenceError as exc:
            logger.warning("State backup failed: %s", exc)

        semaphore = asyncio.Semaphore(max(1, self.config.concurrency))
        outcomes = await asyncio.gather(*(self._process_symbol(s, semaphore) for s in self.config.symbols))

        total_runs = await self.context.store.increment_runs()
        decided = sum(1 for o in outcomes if o.result is not None and o.result.decision is not None)
        skipped = sum(1 for o in outcomes if o.skipped)
        failed = sum(1 for o in outcomes if o.error is not None)
        logger.info(
            "Batch %d done: %d decided, %d skipped, %d failed (run #%d)",
            self._iteration,
            decided,
            skipped,
            failed,
            total_runs,
        )
        return list(outcomes)

    async def run(self) -> None:
        """Run batches until stopped or ``max_iterations`` is reached."""
        logger.info("Starting orchestrator for %s", ", ".join(self.config.symbols))
        self._running = True
        try:
            while self._running:
                await self.run_once()

                if self.config.max_iterations and self._iteration >= self.config.max_iterations:
                    logger.info("Reached max iterations (%d)", self.config.max_iterations)
                    break

                logger.debug("Sleeping %ss until next batch", self.config.poll_interval)
                await asyncio.sleep(self.config.poll_interval)
        except asyncio.CancelledError:
            logger.info("Orchestrator cancelled")
        finally:
            self._running = False
            logger.info("Orchestrator stopped")

    def stop(self) -> None:
        self._running = False


# ========== CLI Entry Point ==========


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tradeloop", description="LLM tool-calling trading agent")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Analyse symbols and record decisions")
    run.add_argument("--symbols", nargs="+", help="Symbols to analyse (default: ALLOWED_PAIRS)")
    run.add_argument("--max-turns", type=int, help="Turn budget per symbol (default: BOT_MAX_TURNS)")
    run.add_argument("--concurrency", type=int, help="Symbols analysed at once (default: ANALYSIS_CONCURRENCY)")
    run.add_argument("--loop", action="store_true", help="Keep running batches")
    run.add_argument("--interval", type=float, default=300.0, help="Seconds between batches in loop mode")
    run.add_argument("--iterations", type=int, help="Max batches in loop mode (default: infinite)")
    run.add_argument(
        "--no-skip-duplicates",
        dest="skip_duplicates",
        action="store_false",
        help="Analyse even if the latest candle already has a decision",
    )

    history = sub.add_parser("history", help="Print the stored history summary for a symbol")
    history.add_argument("symbol")
    return parser


async def _run(args: argparse.Namespace, app_config: AppConfig) -> None:
    context = AppContext.build(app_config)
    symbols = [normalize_symbol(s) for s in args.symbols] if args.symbols else app_config.pairs()
    config = OrchestratorConfig(
        symbols=symbols,
        max_turns=args.max_turns,
        concurrency=args.concurrency or app_config.analysis_concurrency,
        poll_interval=args.interval,
        max_iterations=args.iterations if args.loop else 1,
        skip_duplicates=args.skip_duplicates,
    )
    orchestrator = Orchestrator(context, config)
    try:
        if args.loop:
            await orchestrator.run()
        else:
            await orchestrator.run_once()
    finally:
        await context.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    load_dotenv()
    app_config = AppConfig.from_env()

    if args.command == "history":
        store = PersistenceStore(app_config.state_file)
        print(generate_context_summary(store.load(), normalize_symbol(args.symbol), app_config.history_window))
        return 0

    asyncio.run(_run(args, app_config))
    return 0


def cli() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    cli()
