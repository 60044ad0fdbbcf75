"""Tests for read-side projections."""
import pytest
from uploadsim.models import FileDescriptor, UploadStatus, UploadTask
from uploadsim.summary import UploadSummary, format_bytes, sort_by_status


def make_task(task_id, status, progress=0.0):
    return UploadTask(id=task_id, file=FileDescriptor(f"{task_id}.bin"), progress=progress, status=status)


class TestUploadSummary:
    def test_empty(self):
        summary = UploadSummary.from_tasks([])
        assert summary.total == 0
        assert summary.average_progress == 0.0
        assert summary.is_finished is True
        assert summary.all_success is False

    def test_counts_and_average_skip_waiting(self):
        tasks = [
            make_task("w", UploadStatus.WAITING),
            make_task("u", UploadStatus.UPLOADING, 0.4),
            make_task("c", UploadStatus.COMPLETED, 1.0),
            make_task("e", UploadStatus.ERROR, 0.3),
        ]

        summary = UploadSummary.from_tasks(tasks)

        assert summary.total == 4
        assert summary.waiting == 1
        assert summary.uploading == 1
        assert summary.completed == 1
        assert summary.failed == 1
        assert summary.active == 3
        assert summary.average_progress == pytest.approx((0.4 + 1.0 + 0.3) / 3)
        assert summary.is_finished is False

    def test_only_waiting_has_zero_average(self):
        summary = UploadSummary.from_tasks([make_task("w", UploadStatus.WAITING)])
        assert summary.average_progress == 0.0
        assert summary.active == 0

    def test_all_success(self):
        tasks = [make_task("a", UploadStatus.COMPLETED, 1.0), make_task("b", UploadStatus.COMPLETED, 1.0)]
        summary = UploadSummary.from_tasks(tasks)
        assert summary.all_success is True
        assert summary.is_finished is True


class TestSortByStatus:
    def test_groups_by_status_and_keeps_input(self):
        tasks = [
            make_task("e1", UploadStatus.ERROR, 0.3),
            make_task("c1", UploadStatus.COMPLETED, 1.0),
            make_task("u1", UploadStatus.UPLOADING, 0.5),
            make_task("w1", UploadStatus.WAITING),
            make_task("u2", UploadStatus.UPLOADING, 0.1),
        ]
        original = list(tasks)

        ordered = sort_by_status(tasks)

        assert [t.id for t in ordered] == ["w1", "u1", "u2", "c1", "e1"]
        assert tasks == original


class TestFormatBytes:
    @pytest.mark.parametrize(
        "size,expected",
        [
            (0, "0 B"),
            (1023, "1023 B"),
            (1024, "1.00 KB"),
            (1536, "1.50 KB"),
            (1024 * 1024, "1.00 MB"),
            (5 * 1024 ** 3, "5.00 GB"),
            (-10, "0 B"),
        ],
    )
    def test_format(self, size, expected):
        assert format_bytes(size) == expected

    def test_decimals(self):
        assert format_bytes(1536, decimals=1) == "1.5 KB"
