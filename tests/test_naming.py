"""Tests for download file naming."""

from datetime import date

import pytest

from imgcompress.jobs import state
from imgcompress.jobs.models import InputUnit, JobRecord, JobResult
from imgcompress.jobs.options import RenamingOptions
from imgcompress.naming import FALLBACK_NAME, download_filename, generate_filename, sequence_index

TODAY = date(2024, 3, 9)


@pytest.mark.parametrize("pattern, expected", [
    ("{o}", "holiday"),
    ("{o}-min", "holiday-min"),
    ("img_{n}", "img_7"),
    ("{d}_{o}_{n}", "2024-03-09_holiday_7"),
])
def test_placeholders(pattern, expected) -> None:
    assert generate_filename("holiday.jpg", pattern, 7, today=TODAY) == expected


def test_only_last_extension_is_dropped() -> None:
    assert generate_filename("archive.tar.png", "{o}", 1) == "archive.tar"


def test_reserved_and_control_characters() -> None:
    assert generate_filename("a:b*c?.png", "{o}", 1) == "a-b-c-"
    assert generate_filename("zero\u200bwidth\x07.png", "{o}", 1) == "zerowidth"


def test_dots_trimmed_and_length_capped() -> None:
    assert generate_filename("x.png", "..{o}..", 1) == "x"
    assert len(generate_filename("y.png", "{o}" * 300, 1)) == 200


def test_fallback_when_nothing_is_left() -> None:
    assert generate_filename(".png", "{o}", 1) == FALLBACK_NAME
    assert generate_filename("a.png", "...", 1) == FALLBACK_NAME


def _done(name: str, size: int) -> JobRecord:
    job = JobRecord(payload=InputUnit(name=name, data=b"x" * size))
    return state.complete(job, JobResult(data=b"y", media_type="image/webp"), 0, False)


def test_sequence_follows_size_rank() -> None:
    jobs = [_done("big.png", 30), _done("small.png", 10), _done("mid.png", 20)]
    assert [sequence_index(j.id, jobs, 1) for j in jobs] == [3, 1, 2]
    assert sequence_index(jobs[1].id, jobs, 100) == 100
    # 0 is treated as 1
    assert sequence_index(jobs[1].id, jobs, 0) == 1


def test_download_filename_uses_result_extension() -> None:
    jobs = [_done("cat.png", 5), _done("dog.png", 9)]
    renaming = RenamingOptions(pattern="{o}_{n}", start_sequence=1)
    assert download_filename(jobs[1], jobs, renaming) == "dog_2.webp"
