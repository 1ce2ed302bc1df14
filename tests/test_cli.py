from typer.testing import CliRunner

from strata.cli.app import app

runner = CliRunner()

SRT = "1\n00:00:01,000 --> 00:00:02,500\nHello, world\n"


def test_subs_convert_writes_vtt(tmp_path):
    source = tmp_path / "movie.srt"
    source.write_text(SRT, encoding="utf-8")

    result = runner.invoke(app, ["subs", "convert", str(source)])

    assert result.exit_code == 0
    text = (tmp_path / "movie.vtt").read_text(encoding="utf-8")
    assert text.startswith("WEBVTT")
    assert "00:00:01.000 --> 00:00:02.500" in text
    assert "Hello, world" in text


def test_subs_convert_refuses_to_overwrite_input(tmp_path):
    source = tmp_path / "movie.vtt"
    source.write_text("WEBVTT\n", encoding="utf-8")

    result = runner.invoke(app, ["subs", "convert", str(source)])

    assert result.exit_code == 1
    assert source.read_text(encoding="utf-8") == "WEBVTT\n"


def test_probe_classifies_non_hls_sources():
    result = runner.invoke(app, ["probe", "magnet:?xt=urn:btih:abc"])
    assert result.exit_code == 0
    assert "webtorrent" in result.output


def test_download_rejects_unknown_format():
    result = runner.invoke(
        app, ["download", "https://x.example.com/a.m3u8", "--format", "mkv"]
    )
    assert result.exit_code == 1
    assert "Unknown format" in result.output


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "strata" in result.output
