"""Encoder interface and result types.

The scheduler treats an encoder as a black box: bytes and options in,
bytes out (or an exception). ``encode`` is synchronous and is always called
from a worker thread.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from imgcompress.errors import EncodeCancelled
from imgcompress.formats import ImageFormat
from imgcompress.jobs.options import OptimizerConfig


@dataclass
class EncodeResult:
    data: bytes = field(repr=False)
    format: ImageFormat
    elapsed_ms: float
    # The encoder kept the input unchanged because re-encoding did not help
    is_original: bool = False


@dataclass(frozen=True)
class CancelToken:
    """Best-effort cancellation flag shared by every job of one generation."""
    _event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise EncodeCancelled()


class Encoder(ABC):
    """Abstract base class for encoder backends.

    ``cancel_all`` flags every token handed out so far; tokens obtained
    afterwards start clean, so new work is unaffected.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = threading.Event()

    def new_token(self) -> CancelToken:
        with self._lock:
            return CancelToken(self._generation)

    def cancel_all(self) -> None:
        with self._lock:
            self._generation.set()
            self._generation = threading.Event()

    @abstractmethod
    def encode(
        self,
        data: bytes,
        source_format: Optional[ImageFormat],
        config: OptimizerConfig,
        cancel: CancelToken,
    ) -> EncodeResult:
        """Re-encode ``data``. Raises EncoderError, or EncodeCancelled."""
        ...

    def supports(self, output_format: ImageFormat) -> bool:
        """Whether this backend can write ``output_format`` at all."""
        return True
