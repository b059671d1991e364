# jupbot/lifecycle.py
import logging
from enum import Enum

from .models import TradeFlag
from .strategy import TradingController


class LifecycleState(Enum):
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    LIQUIDATING = "LIQUIDATING"
    TERMINATED = "TERMINATED"


class ShutdownCoordinator:
    """
    RUNNING -> STOPPING on interrupt, then either straight to TERMINATED or
    through LIQUIDATING when the user asks to close the position.
    An in-flight trade is waited for (bounded), never cancelled.
    """
    def __init__(self, controller: TradingController, logger: logging.Logger, wait_timeout: float = 10.0):
        self.controller = controller
        self.logger = logger
        self.wait_timeout = wait_timeout
        self.state = LifecycleState.RUNNING

    def request_stop(self):
        if self.state is not LifecycleState.RUNNING:
            return
        self.logger.info("👮 Program interrupted (Ctrl+C)")
        self.state = LifecycleState.STOPPING
        self.controller.stop()

    async def finish(self, liquidate: bool) -> int:
        """Returns the process exit code."""
        if self.state is LifecycleState.RUNNING:
            self.request_stop()
        try:
            if not liquidate:
                self.logger.info("❌ User canceled operation, program terminated")
                return 0

            self.state = LifecycleState.LIQUIDATING
            self.logger.info("⌛️ Please wait for closing positions...")
            if self.controller.flag is not TradeFlag.NONE:
                self.logger.info("⌛️ Waiting for the trade in flight to complete...")
                if not await self.controller.wait_until_idle(self.wait_timeout):
                    self.logger.warning(f"Trade still in flight after {self.wait_timeout}s")

            await self.controller.liquidate()
            self.logger.info("✅ All operations completed, program terminated")
            return 0
        except Exception as e:
            self.logger.error(f"❌ Error occurred: {e}")
            return 1
        finally:
            self.state = LifecycleState.TERMINATED
