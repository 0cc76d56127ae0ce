import csv
from datetime import datetime

from lossless_vault.formats import PhotoFormat
from lossless_vault.models import Confidence, DuplicateGroup
from lossless_vault.reporting import HEADERS, ReportGenerator


def test_write_groups_csv(make_record, tmp_path):
    records = [
        make_record(1, fmt=PhotoFormat.JPEG, width=4000, height=3000,
                    capture_time=datetime(2023, 1, 2, 3, 4, 5)),
        make_record(2, fmt=PhotoFormat.NEF),
        make_record(3, fmt=PhotoFormat.PNG),
    ]
    groups = [DuplicateGroup(1, (1, 2), Confidence.HIGH, canonical_id=2)]
    out = tmp_path / "report.csv"

    rows = ReportGenerator().write_groups_csv(groups, records, out)

    assert rows == 2
    with open(out, newline="", encoding="utf-8") as f:
        data = list(csv.reader(f))

    assert data[0] == HEADERS
    keep, redundant = data[1], data[2]
    assert keep[:3] == ["1", "High", "Keep"]
    assert keep[4] == "NEF"
    assert redundant[2] == "Redundant"
    assert redundant[6] == "4000x3000"
    assert redundant[7] == "2023-01-02 03:04:05"


def test_empty_report_has_header_only(tmp_path):
    out = tmp_path / "report.csv"
    assert ReportGenerator().write_groups_csv([], [], out) == 0
    with open(out, newline="", encoding="utf-8") as f:
        assert list(csv.reader(f)) == [HEADERS]
