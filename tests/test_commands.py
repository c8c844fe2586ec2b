"""
Tests for print command construction.
"""

from pathlib import Path

import pytest

from lan_print_backend.commands import build_print_command, powershell_quote
from lan_print_backend.models import PrintOptions

DOC = Path("/srv/uploads/file-1-2.pdf")


def _options(**kwargs):
    return PrintOptions(**kwargs)


class TestCopies:
    def test_three_copies_without_printer_issue_three_prints(self):
        command = build_print_command(DOC, None, _options(copies=3), backend="cups")
        assert command.print_count == 3
        assert all("-d" not in invocation.args for invocation in command.print_invocations)

    def test_three_copies_on_windows_default_printer(self):
        command = build_print_command(DOC, None, _options(copies=3), backend="windows")
        assert command.print_count == 3
        for invocation in command.print_invocations:
            assert invocation.program == "powershell.exe"
            assert "-Verb Print " in invocation.args[-1]

    def test_default_is_a_single_print(self):
        command = build_print_command(DOC, backend="cups")
        assert command.print_count == 1
        assert len(command.invocations) == 1

    def test_copies_never_forwarded_as_flag(self):
        command = build_print_command(DOC, "Office", _options(copies=2), backend="cups")
        for invocation in command.print_invocations:
            assert "-n" not in invocation.args


class TestDuplex:
    @pytest.mark.parametrize(
        "duplex, expected",
        [("duplex", "sides=two-sided-long-edge"), ("tumble", "sides=two-sided-short-edge")],
    )
    def test_cups_duplex_modes(self, duplex, expected):
        command = build_print_command(DOC, None, _options(duplex=duplex), backend="cups")
        assert expected in command.invocations[0].args

    @pytest.mark.parametrize("options", [None, PrintOptions(duplex="simplex")])
    def test_simplex_emits_no_sides_option(self, options):
        command = build_print_command(DOC, None, options, backend="cups")
        assert not any(arg.startswith("sides=") for arg in command.invocations[0].args)

    @pytest.mark.parametrize(
        "duplex, expected",
        [("duplex", "-DuplexingMode TwoSidedLongEdge"), ("tumble", "-DuplexingMode TwoSidedShortEdge")],
    )
    def test_windows_duplex_configures_printer_first(self, duplex, expected):
        command = build_print_command(DOC, "Office", _options(duplex=duplex), backend="windows")
        configure = command.invocations[0]
        assert configure.purpose == "configure"
        assert expected in configure.args[-1]
        assert "$printer = 'Office'" in configure.args[-1]
        assert command.print_count == 1

    def test_windows_simplex_has_no_configure_step(self):
        command = build_print_command(DOC, "Office", _options(duplex="simplex"), backend="windows")
        assert [invocation.purpose for invocation in command.invocations] == ["print"]
        assert not command.changes_printer_settings


class TestWindowsSettingsRestore:
    def test_duplex_job_restores_printer_afterwards(self):
        command = build_print_command(DOC, "Office", _options(duplex="duplex", copies=2), backend="windows")
        assert [invocation.purpose for invocation in command.invocations] == ["configure", "print", "print", "restore"]

        configure, restore = command.invocations[0].args[-1], command.invocations[-1].args[-1]
        assert configure.index("Get-PrintConfiguration") < configure.index("Set-PrintConfiguration")
        assert "$printer = 'Office'" in restore
        assert "-DuplexingMode $saved.DuplexingMode" in restore
        assert "-PaperSize $saved.PaperSize" in restore

    def test_configure_and_restore_share_a_snapshot(self):
        command = build_print_command(DOC, "Office", _options(paper_size="Letter"), backend="windows")
        configure, restore = command.invocations[0].args[-1], command.invocations[-1].args[-1]
        snapshot = "'print-settings-Office-file-1-2.pdf.json'"
        assert snapshot in configure
        assert snapshot in restore

    def test_snapshot_name_is_sanitised(self):
        command = build_print_command(DOC, "HP LaserJet \\\\srv", _options(duplex="tumble"), backend="windows")
        assert "'print-settings-HP_LaserJet_srv-file-1-2.pdf.json'" in command.invocations[0].args[-1]

    def test_simplex_after_duplex_leaves_no_stale_settings(self):
        first = build_print_command(DOC, "Office", _options(duplex="duplex"), backend="windows")
        second = build_print_command(DOC, "Office", _options(duplex="simplex"), backend="windows")
        assert first.invocations[-1].purpose == "restore"
        assert [invocation.purpose for invocation in second.invocations] == ["print"]

    def test_cups_never_needs_restore(self):
        command = build_print_command(DOC, "Office", _options(duplex="duplex", paper_size="Letter"), backend="cups")
        assert command.restore_invocations == []


class TestPaperSize:
    def test_a4_is_not_forwarded(self):
        command = build_print_command(DOC, None, _options(paper_size="A4"), backend="cups")
        assert not any(arg.startswith("media=") for arg in command.invocations[0].args)

    def test_other_sizes_are_forwarded(self):
        command = build_print_command(DOC, None, _options(paper_size="Letter"), backend="cups")
        assert "media=Letter" in command.invocations[0].args

    def test_windows_paper_size_targets_default_printer_when_unnamed(self):
        command = build_print_command(DOC, None, _options(paper_size="A3", copies=2), backend="windows")
        configure = command.invocations[0]
        assert configure.purpose == "configure"
        assert "-PaperSize 'A3'" in configure.args[-1]
        assert "Default=TRUE" in configure.args[-1]
        assert command.print_count == 2

    def test_options_apply_to_every_copy(self):
        command = build_print_command(DOC, None, _options(paper_size="A5", duplex="duplex", copies=2), backend="cups")
        for invocation in command.print_invocations:
            assert "media=A5" in invocation.args
            assert "sides=two-sided-long-edge" in invocation.args


class TestPrinterSelection:
    def test_named_printer_on_cups(self):
        command = build_print_command(DOC, "Office", backend="cups")
        args = command.invocations[0].args
        assert args[args.index("-d") + 1] == "Office"
        assert command.printer_name == "Office"
        assert args[-1] == str(DOC)

    def test_empty_printer_name_means_default(self):
        command = build_print_command(DOC, "", backend="cups")
        assert command.printer_name is None
        assert "-d" not in command.invocations[0].args

    def test_windows_image_to_named_printer_uses_image_viewer(self):
        command = build_print_command(Path("C:/uploads/photo.JPG"), "Photo Printer", backend="windows")
        invocation = command.invocations[0]
        assert invocation.argv[:3] == ["rundll32.exe", "shimgvw.dll,ImageView_PrintTo", "/pt"]
        assert invocation.argv[-1] == "Photo Printer"

    def test_windows_document_to_named_printer_uses_printto_verb(self):
        command = build_print_command(DOC, "Office", backend="windows")
        script = command.invocations[0].args[-1]
        assert "-Verb PrintTo" in script
        assert "'\"Office\"'" in script

    def test_file_path_with_quote_is_escaped(self):
        command = build_print_command(Path("/tmp/o'brien.pdf"), None, backend="windows")
        assert "'/tmp/o''brien.pdf'" in command.invocations[0].args[-1]

    def test_unknown_backend_is_rejected(self):
        with pytest.raises(ValueError):
            build_print_command(DOC, backend="plan9")


def test_powershell_quote():
    assert powershell_quote("it's") == "'it''s'"
