"""
CLI smoke tests.
"""

from beamplace.cli import main
from beamplace.layout.loader import load_layout


class TestCli:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "optimize" in capsys.readouterr().out

    def test_score(self, chain_yaml, capsys):
        assert main(["score", str(chain_yaml)]) == 0
        out = capsys.readouterr().out
        assert "Components: 3" in out
        assert "path_length" in out

    def test_trace_aligned(self, chain_yaml, capsys):
        assert main(["trace", str(chain_yaml)]) == 0
        assert "2/2 segments aligned" in capsys.readouterr().out

    def test_trace_misaligned(self, tmp_path, capsys):
        path = tmp_path / "bent.yaml"
        path.write_text(
            "components:\n"
            "  - {id: laser, type: source, x: 100, y: 300, emission_angle: 0, fixed: true}\n"
            "  - {id: det, type: detector, x: 300, y: 200}\n"
            "beams:\n"
            "  - {source: laser, target: det}\n"
        )
        assert main(["trace", str(path)]) == 2
        assert "misaligned" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        assert main(["score", str(tmp_path / "missing.yaml")]) == 1
        assert "Error:" in capsys.readouterr().out

    def test_null_coordinate_reports_error(self, tmp_path, capsys):
        path = tmp_path / "null.yaml"
        path.write_text("components:\n  - {id: m1, type: mirror, x: null, y: 100}\n")
        assert main(["score", str(path)]) == 1
        out = capsys.readouterr().out
        assert "Error: Invalid component m1" in out

    def test_optimize_writes_output(self, chain_yaml, tmp_path, capsys):
        output = tmp_path / "best.yaml"
        code = main(["optimize", str(chain_yaml), "--seed", "3", "--iterations", "100",
                     "-q", "-o", str(output)])
        assert code == 0
        assert output.exists()
        assert "Best cost" in capsys.readouterr().out
        assert set(load_layout(output).components) == {"laser", "m1", "det"}

    def test_optimize_default_output_name(self, chain_yaml):
        assert main(["optimize", str(chain_yaml), "--seed", "1", "--iterations", "50", "-q"]) == 0
        assert (chain_yaml.parent / "chain.optimized.yaml").exists()

    def test_optimize_dry_run(self, chain_yaml, capsys):
        assert main(["optimize", str(chain_yaml), "--iterations", "50", "--dry-run",
                     "--com-weight", "1.0"]) == 0
        assert "Dry run" in capsys.readouterr().out
        assert not (chain_yaml.parent / "chain.optimized.yaml").exists()
