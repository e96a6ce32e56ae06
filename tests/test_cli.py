import pytest
from click.testing import CliRunner

from cidrmath import __version__
from cidrmath.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_summarize_from_stdin(runner):
    result = runner.invoke(cli, ["summarize", "-"], input="10.0.0.0/25\n10.0.0.128/25\n")
    assert result.exit_code == 0, result.output
    assert "10.0.0.0/24" in result.output


def test_summarize_only_bad_lines_exits_1(runner):
    result = runner.invoke(cli, ["summarize", "-"], input="bogus\n")
    assert result.exit_code == 1
    assert "❌ Line 1" in result.output


def test_summarize_partial_errors_still_succeed(runner):
    result = runner.invoke(cli, ["summarize", "-"], input="10.0.0.1\nbogus\n")
    assert result.exit_code == 0
    assert "10.0.0.1/32" in result.output
    assert "❌ Line 2" in result.output


def test_decompose_constrained_needs_prefix(runner):
    result = runner.invoke(cli, ["decompose", "-", "--mode", "constrained"], input="10.0.0.0/24\n")
    assert result.exit_code == 2


def test_decompose_constrained(runner):
    result = runner.invoke(cli, ["decompose", "-", "-m", "constrained", "-p", "26"], input="10.0.0.0/25\n")
    assert result.exit_code == 0, result.output
    assert "10.0.0.0/26" in result.output
    assert "10.0.0.64/26" in result.output


def test_diff(runner, tmp_path):
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("10.0.0.0/24\n")
    b.write_text("10.0.0.0/25\n")
    result = runner.invoke(cli, ["diff", str(a), str(b)])
    assert result.exit_code == 0, result.output
    assert "10.0.0.128/25" in result.output


def test_overlap_none(runner, tmp_path):
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("10.0.0.0/24\n")
    b.write_text("10.0.1.0/24\n")
    result = runner.invoke(cli, ["overlap", str(a), str(b)])
    assert result.exit_code == 0
    assert "No overlap." in result.output


def test_contains(runner, tmp_path):
    containers = tmp_path / "containers.txt"
    containers.write_text("192.168.1.0/24\n")
    result = runner.invoke(cli, ["contains", str(containers), "-"], input="192.168.1.0/25\n")
    assert result.exit_code == 0, result.output
    assert "inside" in result.output


def test_align(runner):
    result = runner.invoke(cli, ["align", "-", "--prefix", "24"], input="10.0.0.0/24\n")
    assert result.exit_code == 0, result.output
    assert "✅" in result.output


def test_vlsm(runner, tmp_path):
    requests = tmp_path / "requests.txt"
    requests.write_text("web 100\ndb 50\n")
    result = runner.invoke(cli, ["vlsm", "10.0.0.0/24", str(requests)])
    assert result.exit_code == 0, result.output
    assert "10.0.0.0/25" in result.output
    assert "10.0.0.128/26" in result.output


def test_vlsm_bad_parent_exits_1(runner):
    result = runner.invoke(cli, ["vlsm", "nope", "-"], input="web 10\n")
    assert result.exit_code == 1


def test_next_available(runner, tmp_path):
    pools = tmp_path / "pools.txt"
    used = tmp_path / "used.txt"
    pools.write_text("10.0.0.0/24\n")
    used.write_text("10.0.0.0/26\n")
    result = runner.invoke(cli, ["next-available", str(pools), str(used), "--prefix", "26"])
    assert result.exit_code == 0, result.output
    assert "10.0.0.64/26" in result.output


def test_next_available_without_size_exits_1(runner, tmp_path):
    pools = tmp_path / "pools.txt"
    pools.write_text("10.0.0.0/24\n")
    result = runner.invoke(cli, ["next-available", str(pools)])
    assert result.exit_code == 1
    assert "Must specify" in result.output


def test_config_show_creates_default(runner, isolated_config):
    result = runner.invoke(cli, ["config", "show"])
    assert result.exit_code == 0, result.output
    assert "exact_iteration_cap: 1000" in result.output
    assert (isolated_config / "xdg" / "cidrmath" / "config.yaml").exists()


def test_bad_config_is_a_usage_error(runner, tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("engine:\n  display_cap: lots\n")
    result = runner.invoke(cli, ["--config", str(path), "config", "show"])
    assert result.exit_code == 2
    assert "display_cap" in result.output


def test_config_overrides_defaults(runner, tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text("allocation:\n  max_candidates: 1\n")
    pools = tmp_path / "pools.txt"
    pools.write_text("10.0.0.0/24\n")
    result = runner.invoke(cli, ["-c", str(path), "next-available", str(pools), "-p", "26"])
    assert result.exit_code == 0, result.output
    assert "10.0.0.0/26" in result.output
    assert "10.0.0.64/26" not in result.output
