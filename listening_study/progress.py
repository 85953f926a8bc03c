"""
Progress reporting adapter: drives a tqdm bar from on_change(completed, total).
"""

import threading
from typing import Optional

from tqdm import tqdm


class ProgressBar:
    """
    tqdm bar usable as a WorkerPool on_change callback.

    The bar is created on the first update, once the total is known,
    and closed when completed reaches the total.
    """

    def __init__(self, desc: str = "Processing", disable: bool = False):
        self.desc = desc
        self.disable = disable
        self.completed = 0
        self.total = 0
        self._bar: Optional[tqdm] = None
        self._lock = threading.Lock()

    def update(self, completed: int, total: int):
        with self._lock:
            if self._bar is None:
                self._bar = tqdm(total=total, desc=self.desc, disable=self.disable)
                self.completed = 0
            self._bar.update(completed - self.completed)
            self.completed = completed
            self.total = total
            if completed >= total:
                self._bar.close()
                self._bar = None

    @property
    def closed(self) -> bool:
        return self._bar is None

    __call__ = update
