import argparse
import asyncio
import signal
import sys

from launch_sniper.core.errors import ConfigValidationError
from launch_sniper.core.sniper_bot import SniperBot
from launch_sniper.utils.config import Config
from launch_sniper.utils.logger import TradingLogger

SHUTDOWN_TIMEOUT = 60  # Selling every open position can take a few confirmations

class InitSniper:
    def __init__(self, config: Config, logger: TradingLogger):
        self.config = config
        self.logger = logger
        self.bot = None
        self._shutdown_event = asyncio.Event()

    def handle_shutdown(self, signum, frame):
        """Handle shutdown signals"""
        self.logger.info(f"Received signal {signum}. Starting graceful shutdown...")
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run the sniper until a shutdown signal arrives"""
        self.bot = SniperBot(self.config, logger=self.logger)
        bot_task = asyncio.create_task(self.bot.start())
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())
        try:
            done, _ = await asyncio.wait({bot_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)
            if bot_task in done and bot_task.exception() is not None:
                self.logger.error(f"Error in sniper bot: {bot_task.exception()}")
        finally:
            shutdown_task.cancel()
            await self.shutdown()
            if not bot_task.done():
                bot_task.cancel()

    async def shutdown(self):
        """Gracefully shutdown the sniper, closing open positions"""
        if self.bot is None:
            return
        self.logger.info("Shutting down sniper bot...")
        try:
            await asyncio.wait_for(self.bot.stop(), timeout=SHUTDOWN_TIMEOUT)
            self.logger.info("Sniper bot stopped successfully")
        except asyncio.TimeoutError:
            self.logger.error(f"Shutdown timed out after {SHUTDOWN_TIMEOUT} seconds")
        except Exception as e:
            self.logger.error(f"Error during shutdown: {e}")
        finally:
            self.bot.is_running = False

async def run(config_path: str, env_file: str = None) -> int:
    try:
        config = Config.load(config_path, env_file)
    except ConfigValidationError as e:
        print(str(e), file=sys.stderr)
        return 1

    logger = TradingLogger(
        "launch_sniper",
        log_dir=config.logging.log_dir,
        console_output=config.logging.console_output,
        level=config.logging.level,
    )
    init_sniper = InitSniper(config, logger)

    # Register signal handlers
    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, init_sniper.handle_shutdown)

    try:
        logger.info("Starting sniper bot...")
        await init_sniper.run()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        return 1
    finally:
        logger.info("Sniper bot shutdown complete")
    return 0

def main():
    parser = argparse.ArgumentParser(description="Snipe new token launches on Solana")
    parser.add_argument("-c", "--config", default="config.yaml", help="path to the YAML configuration")
    parser.add_argument("--env-file", default=None, help="dotenv file with wallet secrets")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args.config, args.env_file)))

if __name__ == "__main__":
    main()
