# jupbot/logger.py
import asyncio
import aiofiles
from aiocsv import AsyncWriter
import logging
import sys
import os
from datetime import datetime
from typing import List, Any, Optional

AUDIT_HEADER = ["timestamp", "side", "in_amount", "out_amount", "fill_price", "signature", "status"]


class AsyncAuditLogger:
    """
    Non-blocking CSV log of every trade attempt.
    Disk I/O runs in a background task fed by an asyncio Queue so the trading
    loop never waits on the filesystem.
    """
    def __init__(self, filepath: str):
        self.filepath = filepath
        self._queue = asyncio.Queue()
        self._worker_task = None

    async def start(self):
        """
        Creates the file (with header) if missing and starts the background writer.
        """
        directory = os.path.dirname(self.filepath)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        if not os.path.exists(self.filepath):
            async with aiofiles.open(self.filepath, mode='w', newline='') as f:
                writer = AsyncWriter(f, dialect='unix')
                await writer.writerow(AUDIT_HEADER)
        self._worker_task = asyncio.create_task(self._writer_worker())

    async def log_trade(self, data: List[Any]):
        await self._queue.put(data)

    async def stop(self):
        """Flushes pending rows, then stops the writer."""
        if self._worker_task is None:
            return
        await self._queue.join()
        self._worker_task.cancel()
        await asyncio.gather(self._worker_task, return_exceptions=True)
        self._worker_task = None

    async def _writer_worker(self):
        while True:
            row = await self._queue.get()
            try:
                async with aiofiles.open(self.filepath, mode='a', newline='') as f:
                    writer = AsyncWriter(f, dialect='unix')
                    await writer.writerow(row)
            except Exception as e:
                # Disk failure must not take the bot down
                print(f"LOGGING FAILURE: {e}", file=sys.stderr)
            finally:
                self._queue.task_done()


def setup_console_logger(name: str, level: str, log_dir: Optional[str] = None):
    """
    Sets up the standard Python logger for console output.
    When log_dir is given, every record is also appended to a per-run file
    named after the start time (YYYYMMDDHHMM.log).
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter('%(asctime)s | %(levelname)s | %(module)s | %(message)s')
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            filename = datetime.now().strftime('%Y%m%d%H%M') + '.log'
            file_handler = logging.FileHandler(os.path.join(log_dir, filename), encoding='utf-8')
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)
            logger.addHandler(file_handler)
            logger.setLevel(logging.DEBUG)
            handler.setLevel(level)

    return logger
