"""
Tests for distribution detection — os-release parsing and family matching.
"""

import textwrap
from pathlib import Path

import pytest

from hostprep.core.services.distro_detect import (
    UnsupportedDistro,
    detect_distro,
    match_family,
    parse_os_release,
    read_os_release,
)

# ── Parsing Tests ────────────────────────────────────────────────────


class TestParseOsRelease:
    def test_quotes_stripped(self):
        fields = parse_os_release('NAME="Arch Linux"\nID=arch\nVERSION_ID=\'12\'\n')
        assert fields == {"NAME": "Arch Linux", "ID": "arch", "VERSION_ID": "12"}

    def test_comments_and_blanks_ignored(self):
        fields = parse_os_release("# comment\n\nID=fedora\n")
        assert fields == {"ID": "fedora"}

    def test_malformed_line_ignored(self):
        fields = parse_os_release("garbage line\nID=alpine\n=novalue\n")
        assert fields == {"ID": "alpine"}

    def test_value_with_equals(self):
        fields = parse_os_release('HOME_URL="https://x.org/?a=b"\n')
        assert fields["HOME_URL"] == "https://x.org/?a=b"


class TestReadOsRelease:
    def test_reads_explicit_path(self, os_release):
        fields = read_os_release(os_release("ubuntu"))
        assert fields["ID"] == "ubuntu"

    def test_missing_file_is_unsupported(self, tmp_path: Path):
        with pytest.raises(UnsupportedDistro):
            read_os_release(tmp_path / "nope")


# ── Family Matching Tests ────────────────────────────────────────────


class TestMatchFamily:
    @pytest.mark.parametrize(
        "value,family",
        [
            ("arch", "arch"),
            ("archlinux", "arch"),
            ("debian", "debian"),
            ("ubuntu", "debian"),
            ("ubuntu debian", "debian"),
            ("fedora", "fedora"),
            ("rhel fedora", "fedora"),
            ("alpine", "alpine"),
            ("ARCH", "arch"),
        ],
    )
    def test_known(self, value, family):
        assert match_family(value) == family

    def test_unknown(self):
        assert match_family("gentoo") is None
        assert match_family("") is None


class TestDetectDistro:
    def test_ubuntu_is_debian_family(self, os_release):
        info = detect_distro(read_os_release(os_release("ubuntu")))
        assert info.family == "debian"
        assert info.id == "ubuntu"
        assert info.version_codename == "noble"

    def test_id_like_wins(self):
        info = detect_distro({"ID": "endeavouros", "ID_LIKE": "arch"})
        assert info.family == "arch"
        assert info.id == "endeavouros"

    def test_id_used_without_id_like(self, os_release):
        info = detect_distro(read_os_release(os_release("fedora")))
        assert info.family == "fedora"
        assert info.version_id == "40"

    def test_unknown_id_like_falls_back_to_id(self):
        info = detect_distro({"ID": "debian", "ID_LIKE": "something-else"})
        assert info.family == "debian"

    def test_ubuntu_codename_fallback(self):
        info = detect_distro({"ID": "pop", "ID_LIKE": "ubuntu debian", "UBUNTU_CODENAME": "jammy"})
        assert info.family == "debian"
        assert info.version_codename == "jammy"

    def test_ubuntu_codename_preferred_on_derivatives(self):
        info = detect_distro({
            "ID": "linuxmint",
            "ID_LIKE": "ubuntu debian",
            "VERSION_CODENAME": "wilma",
            "UBUNTU_CODENAME": "noble",
        })
        assert info.family == "debian"
        assert info.version_codename == "noble"

    def test_unsupported(self, os_release):
        with pytest.raises(UnsupportedDistro) as exc:
            detect_distro(read_os_release(os_release("gentoo")))
        assert exc.value.distro_id == "gentoo"
        assert "gentoo" in str(exc.value)

    def test_empty_fields(self):
        with pytest.raises(UnsupportedDistro, match="unknown"):
            detect_distro({})

    def test_template_vars(self):
        info = detect_distro(
            parse_os_release(textwrap.dedent("""\
                ID=ubuntu
                ID_LIKE=debian
                VERSION_ID="24.04"
                VERSION_CODENAME=noble
            """))
        )
        assert info.template_vars == {
            "codename": "noble",
            "distro": "ubuntu",
            "version_id": "24.04",
        }

    def test_template_vars_derivative_uses_debian(self):
        info = detect_distro({"ID": "kali", "ID_LIKE": "debian", "VERSION_CODENAME": "kali-rolling"})
        assert info.template_vars["distro"] == "debian"
