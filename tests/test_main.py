"""
End-to-end runs of the three analyses on a synthetic CSV.
"""

import numpy as np
import pytest

from topoforecast.config import load_config
from topoforecast.main import main, parse_args, run


@pytest.fixture
def fast_config(stock_csv):
    return load_config({
        "csv_path": str(stock_csv),
        "n_permutations": 50,
        "n_bootstrap": 100,
        "plots": False,
    })


def test_run_produces_all_three_parts(fast_config, capsys):
    result = run(fast_config)

    msc = result["clustering"]
    assert len(msc.labels_) == 400
    assert msc.n_crystals >= 1

    forecast = result["forecast"]
    assert set(forecast["forecasts"]) == {"MSSA", "KNN"}
    assert all(len(v) == 20 for v in forecast["forecasts"].values())
    assert forecast["knn_k"] > 5
    assert set(forecast["errors"].index) == {"MSSA", "KNN"}
    assert np.all(forecast["errors"]["sse"] >= 0)

    comparison = result["comparison"]
    assert len(comparison["null"]) == 50
    assert set(comparison["table"].index) == {"MSSA", "KNN"}

    out = capsys.readouterr().out
    assert "MORSE-SMALE CLUSTERING" in out
    assert "FORECASTING HIGH" in out
    assert "FRECHET COMPARISON" in out


def test_run_saves_figures(fast_config, tmp_path):
    fast_config.update(plots=True, save_dir=str(tmp_path / "figs"))
    run(fast_config)
    assert (tmp_path / "figs" / "crystals.png").exists()
    assert (tmp_path / "figs" / "forecasts.png").exists()


def test_run_rejects_unknown_target(fast_config):
    fast_config["target"] = "close"
    with pytest.raises(ValueError, match="target"):
        run(fast_config)


def test_parse_args_leaves_unset_options_empty():
    args = parse_args([])
    assert args.plots is None
    assert args.csv_path is None
    assert args.download is None


def test_main_cli(stock_csv, capsys):
    main(["--csv", str(stock_csv), "--no-plots", "--target", "low",
          "--test-size", "15", "--log-level", "warning"])
    out = capsys.readouterr().out
    assert "FORECASTING LOW (385 train / 15 test rows)" in out


def test_main_download_writes_csv_before_running(tmp_path, fake_download, capsys):
    path = tmp_path / "downloaded.csv"
    main(["--download", "TEST", "--csv", str(path), "--no-plots",
          "--start", "2019-01-01", "--end", "2019-07-01", "--log-level", "warning"])
    assert fake_download == [("TEST", "2019-01-01", "2019-07-01")]
    assert path.exists()
    assert "FORECASTING HIGH (100 train / 20 test rows)" in capsys.readouterr().out
