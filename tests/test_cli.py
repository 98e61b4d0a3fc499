"""Tests for the command-line runner (offline, CSV input only)."""

from unittest.mock import patch

import pandas as pd
import pytest

from regime_allocator.exceptions import DataFetchError
from run_demo import main


def _write_csv(path, n):
    dates = pd.bdate_range("2023-01-02", periods=n)
    frame = pd.DataFrame({"Date": dates.strftime("%Y-%m-%d"), "Close": [100.0 + i for i in range(n)]})
    frame.to_csv(path, index=False)
    return path


@pytest.fixture
def price_csv(tmp_path):
    return _write_csv(tmp_path / "spy.csv", 80)


class TestMain:
    def test_no_export(self, price_csv, capsys):
        code = main(["--csv", str(price_csv), "--symbol", "spy", "--no-export"])

        out = capsys.readouterr().out
        assert code == 0
        assert "REGIME ALLOCATION BACKTEST REPORT" in out
        assert "Symbol: SPY" in out

    def test_writes_reports(self, price_csv, tmp_path):
        out_dir = tmp_path / "out"
        code = main(["--csv", str(price_csv), "-s", "spy", "-q", "5", "-o", str(out_dir)])

        assert code == 0
        reports = out_dir / "reports"
        assert (reports / "spy_q5_backtest.json").exists()
        assert (reports / "spy_q5_backtest.csv").exists()
        assert (reports / "spy_q5_backtest.md").exists()

    def test_rolling_flag(self, price_csv, capsys):
        code = main(["--csv", str(price_csv), "--rolling", "--no-export"])

        assert code == 0
        assert "rolling classifier" in capsys.readouterr().out

    def test_insufficient_data_exits_with_error(self, tmp_path):
        short = _write_csv(tmp_path / "short.csv", 30)

        assert main(["--csv", str(short), "--no-export"]) == 1

    def test_symbol_defaults_to_csv_name(self, price_csv, tmp_path, capsys):
        out_dir = tmp_path / "out"
        code = main(["--csv", str(price_csv), "-o", str(out_dir)])

        assert code == 0
        assert "Symbol: SPY" in capsys.readouterr().out
        assert (out_dir / "reports" / "spy_q3_backtest.json").exists()
        assert not (out_dir / "reports" / "nvda_q3_backtest.json").exists()

    def test_fetch_uses_default_symbol(self):
        with patch("run_demo.DataAcquisition") as mock_acq:
            mock_acq.return_value.fetch_price_history.side_effect = DataFetchError("no data")

            main(["--no-export"])

        args, _ = mock_acq.return_value.fetch_price_history.call_args
        assert args == ("NVDA",)

    def test_missing_csv_exits_with_error(self, tmp_path):
        assert main(["--csv", str(tmp_path / "nope.csv"), "--no-export"]) == 1

    def test_bad_date_in_csv_exits_with_error(self, tmp_path):
        path = _write_csv(tmp_path / "spy.csv", 60)
        lines = path.read_text().splitlines()
        lines[5] = "garbage," + lines[5].split(",")[1]
        path.write_text("\n".join(lines) + "\n")

        assert main(["--csv", str(path), "--no-export"]) == 1

    def test_out_of_order_csv_exits_with_error(self, tmp_path):
        path = _write_csv(tmp_path / "spy.csv", 60)
        lines = path.read_text().splitlines()
        lines[5], lines[6] = lines[6], lines[5]
        path.write_text("\n".join(lines) + "\n")

        assert main(["--csv", str(path), "--no-export"]) == 1

    def test_fetch_failure_exits_with_error(self):
        with patch("run_demo.DataAcquisition") as mock_acq:
            mock_acq.return_value.fetch_price_history.side_effect = DataFetchError("no data")

            assert main(["--symbol", "ZZZZ", "--no-export"]) == 1

    @pytest.mark.parametrize("value", ["0", "11", "abc"])
    def test_sensitivity_out_of_range(self, value):
        with pytest.raises(SystemExit) as exc:
            main(["--sensitivity", value])
        assert exc.value.code == 2

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "1.0.0" in capsys.readouterr().out
