"""Tests for the hyperevolve command-line interface."""

import json

from click.testing import CliRunner

from hyperevolve.cli.main import cli


class TestCli:
    def test_examples(self):
        result = CliRunner().invoke(cli, ["examples"])
        assert result.exit_code == 0
        assert "triangle" in result.output
        assert "relations=4" in result.output

    def test_simulate(self):
        result = CliRunner().invoke(cli, ["simulate", "triangle", "--steps", "5"])
        assert result.exit_code == 0
        assert "Executed 5 steps (max_steps): 8 atoms, 8 relations" in result.output

    def test_simulate_verbose(self):
        result = CliRunner().invoke(cli, ["simulate", "single_edge", "--steps", "2", "-v"])
        assert result.exit_code == 0
        assert "step 1: rule 0 removed=[0]" in result.output
        assert "step 2:" in result.output

    def test_simulate_empty_graph_reaches_fixed_point(self):
        result = CliRunner().invoke(cli, ["simulate", "empty_graph"])
        assert result.exit_code == 0
        assert "Executed 0 steps (fixed_point)" in result.output

    def test_simulate_unknown_example(self):
        result = CliRunner().invoke(cli, ["simulate", "nope"])
        assert result.exit_code != 0

    def test_simulate_save_and_show(self, tmp_path):
        out = tmp_path / "tri.json"
        runner = CliRunner()
        result = runner.invoke(cli, ["simulate", "triangle", "--steps", "2", "--output", str(out)])
        assert result.exit_code == 0
        assert json.loads(out.read_text())["step_number"] == 2

        shown = runner.invoke(cli, ["show", str(out), "--relations"])
        assert shown.exit_code == 0
        assert "Step: 2  Atoms: 5  Relations: 5" in shown.output
        assert "  2: 5" in shown.output

    def test_simulate_refuses_overwrite(self, tmp_path):
        out = tmp_path / "tri.json"
        runner = CliRunner()
        runner.invoke(cli, ["simulate", "triangle", "--output", str(out)])
        result = runner.invoke(cli, ["simulate", "triangle", "--output", str(out)])
        assert result.exit_code != 0
        assert "overwrite is disabled" in result.output
        result = runner.invoke(cli, ["simulate", "triangle", "--output", str(out), "--overwrite"])
        assert result.exit_code == 0

    def test_save_dir_and_saves(self, tmp_path):
        runner = CliRunner()
        save_dir = str(tmp_path / "saves")
        empty = runner.invoke(cli, ["--save-dir", save_dir, "saves"])
        assert "No saved snapshots." in empty.output

        runner.invoke(cli, ["--save-dir", save_dir, "simulate", "single_edge", "--save"])
        listed = runner.invoke(cli, ["--save-dir", save_dir, "saves"])
        assert listed.exit_code == 0
        assert "hypergraph_step_5_" in listed.output

    def test_save_dir_from_env(self, tmp_path):
        save_dir = tmp_path / "env_saves"
        result = CliRunner().invoke(
            cli,
            ["simulate", "single_edge", "--steps", "1", "--save"],
            env={"HYPEREVOLVE_SAVE_DIR": str(save_dir)},
        )
        assert result.exit_code == 0
        assert len(list(save_dir.glob("*.json"))) == 1

    def test_show_invalid_snapshot(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text('{"atoms": [], "relations": []}')
        result = CliRunner().invoke(cli, ["show", str(bad)])
        assert result.exit_code != 0
        assert "Malformed snapshot" in result.output

    def test_show_non_utf8_snapshot(self, tmp_path):
        bad = tmp_path / "binary.json"
        bad.write_bytes(b"\xff\xfe")
        result = CliRunner().invoke(cli, ["show", str(bad)])
        assert result.exit_code == 1
        assert "not valid UTF-8" in result.output
