"""
Contract tests for the fairdraw command line.

Runs main() in-process against a temporary state file.
"""

import json

import pytest

from fairdraw.app.cli import EXIT_ERROR, EXIT_OK, main


@pytest.fixture
def cli(clean_env, state_path):
    """Run main() with a temporary state file and a fixed seed."""
    def run(command, *args):
        return main([command, "--state-file", str(state_path), "--seed", "7", *args])
    return run


class TestDraw:
    """Tests for the draw command."""

    def test_single_draw(self, cli, capsys, state_path):
        assert cli("draw", "--range", "1", "5") == EXIT_OK

        out = capsys.readouterr().out.split()
        assert len(out) == 1
        assert 1 <= int(out[0]) <= 5
        raw = json.loads(state_path.read_text(encoding="utf-8"))
        assert list(raw) == ["BalancedRand_Range_1_5_3_5_2_0.7"]

    def test_batch_draw(self, cli, capsys):
        assert cli("draw", "--list", "4", "8", "15", "16", "--count", "3") == EXIT_OK

        out = capsys.readouterr().out.split()
        assert len(out) == 3
        assert all(int(n) in (4, 8, 15, 16) for n in out)

    def test_grid_draw_prints_positions(self, cli, capsys):
        assert cli("draw", "--grid", "2", "3", "--blacklist", "1,1", "-n", "2") == EXIT_OK

        for line in capsys.readouterr().out.split():
            row, col = (int(v) for v in line.split(","))
            assert 1 <= row <= 2 and 1 <= col <= 3
            assert (row, col) != (1, 1)

    def test_state_accumulates_across_runs(self, cli, capsys, state_path):
        cli("draw", "--range", "1", "5")
        cli("draw", "--range", "1", "5")
        capsys.readouterr()

        raw = json.loads(state_path.read_text(encoding="utf-8"))
        assert raw["BalancedRand_Range_1_5_3_5_2_0.7"]["total_draws"] == 2

    def test_no_save(self, cli, capsys, state_path):
        assert cli("draw", "--no-save", "--range", "1", "5") == EXIT_OK
        assert not state_path.exists()


class TestStatsAndReset:
    """Tests for the stats and reset commands."""

    def test_stats(self, cli, capsys):
        cli("draw", "--range", "1", "3")
        capsys.readouterr()

        assert cli("stats", "--range", "1", "3") == EXIT_OK
        out = capsys.readouterr().out
        assert "total draws: 1" in out

    def test_reset(self, cli, capsys, state_path):
        cli("draw", "--range", "1", "3")
        assert cli("reset", "--range", "1", "3") == EXIT_OK

        assert "Draw counts reset: BalancedRand_Range_1_3_3_5_2_0.7" in capsys.readouterr().out
        raw = json.loads(state_path.read_text(encoding="utf-8"))
        assert raw["BalancedRand_Range_1_3_3_5_2_0.7"]["total_draws"] == 0

    def test_stats_does_not_write_state(self, cli, capsys, state_path):
        """stats is read-only, even when list options are given."""
        assert cli("stats", "--range", "1", "3", "--blacklist", "2") == EXIT_OK
        assert not state_path.exists()

    def test_stats_does_not_persist_lists(self, cli, capsys, state_path):
        cli("draw", "--range", "1", "3")
        before = state_path.read_text(encoding="utf-8")

        assert cli("stats", "--range", "1", "3", "--whitelist", "2") == EXIT_OK
        assert state_path.read_text(encoding="utf-8") == before


class TestErrors:
    """Tests for error exit codes."""

    def test_invalid_range(self, cli, capsys):
        assert cli("draw", "--range", "5", "1") == EXIT_ERROR
        assert "fairdraw:" in capsys.readouterr().err

    def test_invalid_count(self, cli, capsys):
        assert cli("draw", "--range", "1", "5", "--count", "0") == EXIT_ERROR

    def test_count_larger_than_pool(self, cli, capsys):
        assert cli("draw", "--range", "1", "2", "--count", "3") == EXIT_ERROR

    def test_corrupt_state_file(self, cli, capsys, state_path):
        state_path.write_text("{oops", encoding="utf-8")
        assert cli("draw", "--range", "1", "5") == EXIT_ERROR

    def test_invalid_tuning_override(self, cli, capsys):
        assert cli("draw", "--decay", "2.0", "--range", "1", "5") == EXIT_ERROR

    def test_malformed_position_exits_with_usage_error(self, cli, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli("draw", "--grid", "2", "2", "--blacklist", "oops")
        assert exc_info.value.code == 2
