from __future__ import annotations

import pytest

from vimball import main as main_mod
from vimball.codec import decode
from vimball.installer import RECORD_FILE
from vimball.main import main, split_command

from conftest import write_source


@pytest.fixture(autouse=True)
def _no_log_handlers(monkeypatch):
    # Keep the root logger untouched; caplog and capsys do the capturing.
    monkeypatch.setattr(main_mod, "configure_logging", lambda *a, **kw: None)


def test_split_command_implicit_install() -> None:
    assert split_command(["foo.vba"]) == ("install", ["foo.vba"])
    assert split_command(["foo.vba.gz"]) == ("install", ["foo.vba.gz"])
    assert split_command(["vba", "a.recipe", "b.recipe"]) == ("vba", ["a.recipe", "b.recipe"])
    assert split_command([]) == (None, [])


def test_pack_then_install_into_another_tree(plugin_sources, vimfiles, tmp_path) -> None:
    out = tmp_path / "out"
    assert main(["-b", str(vimfiles), "-d", str(out), "--no-helptags", "vba", str(plugin_sources)]) == 0
    archive = out / "foo.vba"
    assert [e.path for e in decode(archive.read_bytes())] == ["plugin/foo.vim", "doc/foo.txt"]

    target = tmp_path / "target"
    target.mkdir()
    assert main(["-b", str(target), "--no-helptags", "--repo", str(archive)]) == 0
    assert (target / "bundle" / "foo" / "plugin" / "foo.vim").read_bytes() == (
        vimfiles / "plugin" / "foo.vim"
    ).read_bytes()
    assert (target / RECORD_FILE).exists()


def test_list_prints_members(plugin_sources, vimfiles, tmp_path, capsys) -> None:
    out = tmp_path / "out"
    main(["-b", str(vimfiles), "-d", str(out), "vba", str(plugin_sources)])
    capsys.readouterr()

    assert main(["-b", str(vimfiles), "list", str(out / "foo.vba")]) == 0
    assert capsys.readouterr().out == "plugin/foo.vim\ndoc/foo.txt\n"


def test_batch_continues_after_missing_source(plugin_sources, vimfiles, tmp_path) -> None:
    broken = write_source(vimfiles, "vimballs/broken.recipe", "plugin/missing.vim\n")
    out = tmp_path / "out"

    rc = main(["-b", str(vimfiles), "-d", str(out), "vba", str(broken), str(plugin_sources)])
    assert rc == main_mod.EXIT_FATAL
    assert not (out / "broken.vba").exists()
    assert (out / "foo.vba").exists()


def test_install_batch_continues_after_bad_archive(vimfiles, tmp_path) -> None:
    bad = tmp_path / "bad.vba"
    bad.write_text("not a vimball\n")
    good = tmp_path / "good.vba"
    good.write_bytes(
        b'" Vimball Archiver by Charles E. Campbell, Jr., Ph.D.\nUseVimball\nfinish\n'
        b"plugin/good.vim\t[[[1\n1\necho 'good'\n"
    )
    rc = main(["-b", str(vimfiles), "--no-helptags", "--no-record", "install", str(bad), str(good)])
    assert rc == main_mod.EXIT_FATAL
    assert (vimfiles / "plugin" / "good.vim").exists()
    assert not (vimfiles / RECORD_FILE).exists()


def test_dry_run_writes_nothing(plugin_sources, vimfiles, tmp_path) -> None:
    out = tmp_path / "out"
    assert main(["-b", str(vimfiles), "-d", str(out), "-n", "vba", str(plugin_sources)]) == 0
    assert not out.exists()


def test_unknown_command_and_missing_inputs(vimfiles, caplog) -> None:
    assert main(["-b", str(vimfiles), "frobnicate", "x"]) == main_mod.EXIT_FATAL
    assert "Command must be one of" in caplog.text
    assert main(["-b", str(vimfiles), "vba"]) == main_mod.EXIT_FATAL
    assert "No input files" in caplog.text


def test_missing_vimfiles_is_fatal(tmp_path, caplog) -> None:
    assert main(["-b", str(tmp_path / "nope"), "list", "x.vba"]) == main_mod.EXIT_FATAL
    assert "Where are your vimfiles?" in caplog.text


def test_print_config(vimfiles, capsys) -> None:
    assert main(["-b", str(vimfiles), "-z", "--print-config"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Configuration file: ")
    assert "compress: true" in out
    assert f"vimfiles: {vimfiles}" in out


def test_print_version(plugin_sources, vimfiles, capsys) -> None:
    assert main(["-b", str(vimfiles), "--print-version", "foo"]) == 0
    assert capsys.readouterr().out == "1.03\n"


def test_save_yaml_after_pack(plugin_sources, vimfiles) -> None:
    assert main(["-b", str(vimfiles), "vba", str(plugin_sources), "-y"]) == 0
    assert (vimfiles / "vimballs" / "foo.yml").exists()
    assert main(["-b", str(vimfiles), "--print-saved-version", "foo"]) == 0


def test_install_batch_continues_after_non_ascii_count(vimfiles, tmp_path, caplog) -> None:
    header = b'" Vimball Archiver by Charles E. Campbell, Jr., Ph.D.\nUseVimball\nfinish\n'
    bad = tmp_path / "bad.vba"
    bad.write_bytes(header + "plugin/bad.vim\t[[[1\n²\nx\ny\n".encode("utf-8"))
    good = tmp_path / "good.vba"
    good.write_bytes(header + b"plugin/good.vim\t[[[1\n1\necho 'good'\n")

    rc = main(["-b", str(vimfiles), "--no-helptags", "--no-record", "install", str(bad), str(good)])
    assert rc == main_mod.EXIT_FATAL
    assert "Error when parsing vimball" in caplog.text
    assert not (vimfiles / "plugin" / "bad.vim").exists()
    assert (vimfiles / "plugin" / "good.vim").exists()


def test_install_batch_continues_after_escaping_member(vimfiles, tmp_path, caplog) -> None:
    header = b'" Vimball Archiver by Charles E. Campbell, Jr., Ph.D.\nUseVimball\nfinish\n'
    evil = tmp_path / "evil.vba"
    evil.write_bytes(header + b"../escaped.vim\t[[[1\n1\nx\n")
    good = tmp_path / "good.vba"
    good.write_bytes(header + b"plugin/good.vim\t[[[1\n1\necho 'good'\n")

    rc = main(["-b", str(vimfiles), "--no-helptags", "--no-record", "install", str(evil), str(good)])
    assert rc == main_mod.EXIT_FATAL
    assert "escapes" in caplog.text
    assert not (vimfiles.parent / "escaped.vim").exists()
    assert (vimfiles / "plugin" / "good.vim").exists()


def test_vba_batch_continues_after_bad_repo_fmt(make_cfg, plugin_sources, vimfiles, tmp_path, caplog) -> None:
    src = tmp_path / "src"
    write_source(src, "vim-other/plugin/other.vim", "echo 'other'\n")
    other = write_source(vimfiles, "vimballs/other.recipe", "plugin/other.vim\n")
    out = tmp_path / "out"
    cfg = make_cfg(outdir=str(out), roots=[str(src)], repo_fmt="vim-plugin")

    rc = main_mod.run(cfg, "vba", [str(other), str(plugin_sources)])
    assert rc == main_mod.EXIT_FATAL
    assert "repo_fmt" in caplog.text
    assert not (out / "other.vba").exists()
    assert (out / "foo.vba").exists()


def test_vba_batch_survives_bad_gsub_pattern(make_cfg, plugin_sources, vimfiles, tmp_path, caplog) -> None:
    other = write_source(vimfiles, "vimballs/other.recipe", "plugin/foo.vim\n")
    out = tmp_path / "out"
    cfg = make_cfg(outdir=str(out), gsub=[["(unclosed", "x"]])

    rc = main_mod.run(cfg, "vba", [str(other), str(plugin_sources)])
    assert rc == main_mod.EXIT_FATAL
    assert caplog.text.count("bad pattern") == 2
    assert not out.exists()


def test_up_to_date_archive_keeps_its_script_def(plugin_sources, vimfiles) -> None:
    assert main(["-b", str(vimfiles), "-u", "vba", str(plugin_sources), "-y"]) == 0
    yml = vimfiles / "vimballs" / "foo.yml"
    assert yml.exists()
    yml.unlink()

    assert main(["-b", str(vimfiles), "-u", "vba", str(plugin_sources), "-y"]) == 0
    assert not yml.exists()


def test_dry_run_script_def_uses_unwritten_archive(plugin_sources, vimfiles, caplog) -> None:
    caplog.set_level("INFO")
    assert main(["-b", str(vimfiles), "-n", "vba", str(plugin_sources), "-y"]) == 0
    assert not (vimfiles / "vimballs" / "foo.vba").exists()
    assert not (vimfiles / "vimballs" / "foo.yml").exists()
    assert "foo.yml" in caplog.text
