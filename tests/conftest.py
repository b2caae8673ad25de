"""Pytest fixtures for imgcompress tests."""

import pytest

from imgcompress.jobs.models import InputUnit, JobRecord
from imgcompress.storage.job_store import JobStore
from imgcompress.storage.resources import ResourceManager

from support import image_bytes


@pytest.fixture
def resources(tmp_path):
    manager = ResourceManager(str(tmp_path / "views"))
    yield manager
    manager.release_all()


@pytest.fixture
def job_store(tmp_path) -> JobStore:
    return JobStore(str(tmp_path / "jobs.db"))


@pytest.fixture
def png_bytes() -> bytes:
    return image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return image_bytes("JPEG", quality=90)


@pytest.fixture
def webp_bytes() -> bytes:
    return image_bytes("WEBP")


@pytest.fixture
def png_job(png_bytes) -> JobRecord:
    return JobRecord(payload=InputUnit(name="photo.png", media_type="image/png", data=png_bytes))
