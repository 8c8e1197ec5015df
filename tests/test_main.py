import os

from genome_store import GenomeStore
from main import main, parse_args


def _args(tmp_path, *extra):
    return ["--gens", "1", "--pop", "2", "--episodes", "1", "--ticks", "50",
            "--seed", "1", "--store", str(tmp_path / "net.json"),
            "--outdir", str(tmp_path / "out"), *extra]


def test_parse_args_defaults():
    args = parse_args([])
    assert args.pop >= 1
    assert args.workers == 1
    assert not args.no_resume


def test_short_run_saves_genome_and_outputs(tmp_path, capsys):
    assert main(_args(tmp_path, "--no_resume")) == 0
    assert GenomeStore(str(tmp_path / "net.json")).load() is not None
    out = tmp_path / "out"
    assert os.path.isfile(out / "training_log.csv")
    assert os.path.isfile(out / "charts" / "fitness_final.png")
    assert os.path.isfile(out / "genomes" / "gen_000001_best.png")
    assert "Resumed    : no" in capsys.readouterr().out


def test_second_run_resumes_from_the_store(tmp_path, capsys):
    assert main(_args(tmp_path)) == 0
    capsys.readouterr()
    assert main(_args(tmp_path)) == 0
    out = capsys.readouterr().out
    assert "Resumed    : yes" in out
    assert "NeuralNetwork (17 → 16 → 7)" in out


def test_invalid_settings_exit_with_code_2(tmp_path, capsys):
    assert main(_args(tmp_path, "--pop", "0")) == 2
    assert "invalid configuration" in capsys.readouterr().err


def test_zero_generations_saves_nothing(tmp_path):
    assert main(_args(tmp_path, "--gens", "0")) == 0
    assert not os.path.exists(tmp_path / "net.json")


def test_failed_final_save_exits_with_code_1(tmp_path, capsys):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    argv = _args(tmp_path) + ["--store", str(blocker / "net.json")]
    assert main(argv) == 1
    assert "could not write" in capsys.readouterr().err
