from typing import Optional
import logging
from tqdm import tqdm
import time


class ProgressMonitor:
    def __init__(self, total: int, desc: str = "Fitting",
                 logger: Optional[logging.Logger] = None,
                 disable: bool = False):
        """Initialize progress monitor with total candidate count and description"""
        self.logger = logger or logging.getLogger('progress')
        self.pbar = tqdm(total=total, desc=desc, disable=disable, leave=False)
        self.total = total
        self.current = 0
        self.failed = 0
        self.start_time = time.monotonic()
        self.description = desc

    def update(self, n: int = 1, status: str = "", failed: bool = False):
        """Advance by n steps, logging the status of the step just finished"""
        self.current += n
        if failed:
            self.failed += n
        self.pbar.update(n)
        if status:
            self.pbar.set_postfix_str(status)
            self.logger.debug(f"{self.description} [{self.current}/{self.total}]: {status}")

    def close(self):
        """Close progress bar and log final statistics"""
        self.pbar.close()
        total_time = time.monotonic() - self.start_time
        self.logger.info(
            f"Completed {self.description}: {self.current - self.failed}/{self.total} "
            f"succeeded in {total_time:.1f}s"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
