from glmquota import ui


def test_style_concatenates_codes_and_resets():
    assert ui.style("x", ui.RED, ui.BOLD) == "\033[31m\033[1mx\033[0m"


def test_style_without_codes_only_appends_reset():
    assert ui.style("plain") == "plain" + ui.RESET


def test_dimmed_and_accent():
    assert ui.dimmed("n/a") == ui.GRAY + "n/a" + ui.RESET
    assert ui.accent("unit") == ui.CYAN + ui.BOLD + "unit" + ui.RESET


def test_success_prints_icon_and_message(capsys):
    ui.success("done")
    out = capsys.readouterr().out
    assert out == ui.style(ui.ICON_SUCCESS, ui.GREEN, ui.BOLD) + " done\n"


def test_error_warn_info_use_their_icons(capsys):
    ui.error("bad")
    ui.warn("careful")
    ui.info("note")
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == ui.style(ui.ICON_ERROR, ui.RED, ui.BOLD) + " bad"
    assert lines[1] == ui.style(ui.ICON_WARN, ui.YELLOW, ui.BOLD) + " careful"
    assert lines[2] == ui.style(ui.ICON_INFO, ui.BLUE, ui.BOLD) + " note"


def test_header_pads_with_spaces(capsys):
    ui.header("Title")
    out = capsys.readouterr().out
    lines = out.split("\n")
    assert lines[0] == ""
    assert lines[1] == ui.style("Title", ui.CYAN, ui.BOLD, ui.UNDERLINE)
    assert lines[2] == " " * len("Title")


def test_empty_table_prints_nothing(capsys):
    ui.Table().render()
    assert capsys.readouterr().out == ""


def test_table_layout(capsys):
    table = ui.Table("Name", "Value")
    table.add_row("alpha", "1")
    table.add_row("b", "second", "dropped")
    table.render()
    lines = capsys.readouterr().out.split("\n")

    assert ui.GRAY in lines[0] and "Name" in lines[0] and "Value" in lines[0]
    assert lines[1].split() == ["-" * len("alpha"), "-" * len("second")]
    assert lines[2].startswith("alpha")
    assert lines[2].index("1") == len("alpha") + 2
    assert "dropped" not in lines[3]
    assert lines[3].index("second") == lines[2].index("1")
    assert lines[4] == ""