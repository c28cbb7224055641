"""
Tests for scanner output parsing.
"""

import textwrap

import pytest

from hostprep.core.services.clamav.scan_parse import combine_reports, parse_scan_output

SUMMARY = textwrap.dedent("""\
    ----------- SCAN SUMMARY -----------
    Known viruses: 8697438
    Engine version: 1.0.5
    Scanned directories: 1207
    Scanned files: 10845
    Infected files: {infected}
    Data scanned: 2048.13 MB
    Time: 95.112 sec (1 m 35 s)
""")


def _output(found: int) -> str:
    lines = [f"/home/u/Downloads/bad{i}.exe: Win.Test.EICAR_HDB-1 FOUND" for i in range(found)]
    return "\n".join(lines) + ("\n" if lines else "") + "\n" + SUMMARY.format(infected=found)


class TestParseScanOutput:
    @pytest.mark.parametrize("found", [0, 1, 7])
    def test_infected_count_matches_found_lines(self, found):
        report = parse_scan_output(_output(found))
        assert report.infected == found
        assert len(report.infected_lines) == found
        assert report.clean is (found == 0)

    def test_summary_numbers(self):
        report = parse_scan_output(_output(0))
        assert report.scanned_files == 10845
        assert report.scanned_dirs == 1207
        assert report.duration_seconds == 95
        assert report.elapsed_text == "95.112 sec"
        assert not report.incomplete

    def test_measured_duration_wins(self):
        report = parse_scan_output(_output(0), duration_seconds=600)
        assert report.duration_seconds == 600
        assert report.duration_minutes == "10"

    def test_scan_kind(self):
        assert parse_scan_output("", "fast").scan_kind == "fast"

    def test_truncated_log_counts_result_lines(self):
        text = "/a: OK\n/b: OK\n/c: Eicar-Test FOUND\n"
        report = parse_scan_output(text)
        assert report.scanned_files == 3
        assert report.infected == 1
        assert report.scanned_dirs == 0
        assert report.duration_seconds is None

    def test_empty_output_is_incomplete(self):
        report = parse_scan_output("")
        assert report.incomplete
        assert report.duration_minutes == "Unknown"

    def test_clamdscan_elapsed_time(self):
        text = textwrap.dedent("""\
            ----------- SCAN SUMMARY -----------
            Infected files: 0
            Time: 12.5 sec (0 m 12 s)
            Start Date: 2024:01:01 02:00:00
            End Date:   2024:01:01 02:00:12
            Elapsed time: 12.500 sec
        """)
        report = parse_scan_output(text)
        assert report.elapsed_text == "12.500 sec"
        assert report.duration_seconds == 12
        assert report.duration_minutes == "<1"

    def test_regex_fallback_for_odd_spacing(self):
        text = "prefix Scanned files: 12 suffix\n"
        assert parse_scan_output(text).scanned_files == 12


class TestCombineReports:
    def test_sums_targets(self):
        a = parse_scan_output(_output(1), "fast")
        b = parse_scan_output(_output(2), "fast")
        combined = combine_reports([a, b], duration_seconds=30)
        assert combined.scan_kind == "fast"
        assert combined.scanned_files == 2 * 10845
        assert combined.infected == 3
        assert len(combined.infected_lines) == 3
        assert combined.duration_seconds == 30

    def test_empty(self):
        combined = combine_reports([])
        assert combined.infected == 0
        assert combined.incomplete
