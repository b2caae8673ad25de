"""Shared builders and fake encoders for the test suite."""

import asyncio
import io
import threading
import time
from typing import Dict, List, Optional

from PIL import Image

from imgcompress.encoders.base import CancelToken, EncodeResult, Encoder
from imgcompress.errors import EncoderError
from imgcompress.formats import ImageFormat
from imgcompress.jobs.models import InputUnit
from imgcompress.jobs.options import OptimizerConfig

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def png_stub(size: int, tag: int = 0) -> bytes:
    """Bytes that sniff as PNG, exactly ``size`` long. ``tag`` lands at offset 8."""
    assert size >= 9
    return PNG_SIGNATURE + bytes([tag % 256]) + b"\0" * (size - 9)


def stub_unit(name: str, size: int, tag: int = 0) -> InputUnit:
    return InputUnit(name=name, media_type="image/png", data=png_stub(size, tag))


def image_bytes(fmt: str = "PNG", size=(64, 48), mode: str = "RGB", **save_kwargs) -> bytes:
    """A real, decodable gradient image."""
    gradient = Image.linear_gradient("L").resize(size)
    if mode == "RGBA":
        image = Image.merge("RGBA", (gradient, gradient, gradient, gradient))
    elif mode == "L":
        image = gradient
    else:
        image = Image.merge("RGB", (gradient, gradient.transpose(Image.Transpose.FLIP_LEFT_RIGHT), gradient))
    buf = io.BytesIO()
    image.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


SVG_WITH_SCRIPT = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10">'
    b"<script>alert(1)</script>"
    b'<rect width="10" height="10" fill="red" onclick="alert(2)"/>'
    b"</svg>"
)


class GatedEncoder(Encoder):
    """Holds every encode until its gate is opened.

    Gates are keyed by payload size. ``fail_sizes`` makes matching encodes
    raise EncoderError once released.
    """

    def __init__(self, open_all: bool = False) -> None:
        super().__init__()
        self._gates: Dict[int, threading.Event] = {}
        self._gate_lock = threading.Lock()
        self._open_all = open_all
        self.started: List[int] = []
        self.fail_sizes = set()

    def _gate(self, size: int) -> threading.Event:
        with self._gate_lock:
            gate = self._gates.get(size)
            if gate is None:
                gate = self._gates[size] = threading.Event()
                if self._open_all:
                    gate.set()
            return gate

    def release(self, size: int) -> None:
        self._gate(size).set()

    def release_all(self) -> None:
        with self._gate_lock:
            self._open_all = True
            for gate in self._gates.values():
                gate.set()

    def encode(
        self,
        data: bytes,
        source_format: Optional[ImageFormat],
        config: OptimizerConfig,
        cancel: CancelToken,
    ) -> EncodeResult:
        self.started.append(len(data))
        gate = self._gate(len(data))
        while not gate.wait(0.005):
            cancel.raise_if_cancelled()
        cancel.raise_if_cancelled()
        if len(data) in self.fail_sizes:
            raise EncoderError("boom")
        return EncodeResult(
            data=data[: len(data) // 2],
            format=config.output_format.as_image_format(),
            elapsed_ms=1.0,
        )


class CountingEncoder(Encoder):
    """Sleeps briefly per encode and records the peak number in flight."""

    def __init__(self, delay: float = 0.002) -> None:
        super().__init__()
        self.delay = delay
        self.order: List[int] = []
        self.max_in_flight = 0
        self._in_flight = 0
        self._count_lock = threading.Lock()

    def encode(self, data, source_format, config, cancel):
        with self._count_lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
            self.order.append(data[8])
        try:
            time.sleep(self.delay)
            return EncodeResult(data=data[:9], format=ImageFormat.PNG, elapsed_ms=self.delay * 1000)
        finally:
            with self._count_lock:
                self._in_flight -= 1


async def wait_until(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
