"""Tests for the command-line interface."""

import csv

import pytest

from oilscrape import cli
from oilscrape.errors import DriverInitError
from oilscrape.models import ProductRecord

LAVENDER = "https://www.doterra.com/TW/zh_TW/p/lavender-oil"


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep CLI runs from configuring file logging."""
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)


def lavender() -> ProductRecord:
    return ProductRecord(
        name="薰衣草精油",
        url=LAVENDER,
        category="single-oils",
        business_key="30010001",
        product_code="30010001",
        main_benefits=["促進安穩睡眠", "減輕緊張情緒"],
        pv_points=36.0,
    )


class TestParseArgs:
    """Argument parsing and defaults."""

    def test_defaults(self):
        """No arguments means all categories from page 0 with Playwright."""
        args = cli.parse_args([])

        assert args.categories is None
        assert args.start_page == 0
        assert args.driver == "playwright"
        assert not args.dry_run

    def test_repeatable_url(self):
        """--url can be given more than once."""
        args = cli.parse_args(["--url", LAVENDER, "--url", "https://www.doterra.com/TW/zh_TW/p/clove-oil"])

        assert len(args.url) == 2

    def test_export_csv_default_path(self):
        """--export-csv without a path uses the default file."""
        assert cli.parse_args(["--export-csv"]).export_csv == "data/all_products.csv"

    def test_unknown_category_rejected(self):
        """Unknown category names are a usage error."""
        with pytest.raises(SystemExit):
            cli.parse_args(["--categories", "candles"])


class TestInfoCommands:
    """Commands that only read the store."""

    def test_list_categories(self, capsys):
        """Categories are listed with their display names."""
        cli.main(["--list-categories"])

        out = capsys.readouterr().out
        assert "single-oils (單方精油)" in out
        assert "onguard-collection" in out

    def test_stats(self, capsys, store, data_dir):
        """Stats report totals and field coverage."""
        store.write("single-oils", [lavender()])

        cli.main(["--stats", "--data-dir", str(data_dir)])

        out = capsys.readouterr().out
        assert "Total products: 1 (aggregate: 1)" in out
        assert "main_benefits: 1/1 (100%)" in out

    def test_rebuild_aggregate(self, capsys, store, data_dir):
        """The aggregate can be rebuilt on demand."""
        store.write("single-oils", [lavender()], rebuild=False)

        cli.main(["--rebuild-aggregate", "--data-dir", str(data_dir)])

        assert len(store.read_aggregate()) == 1
        assert "with 1 products" in capsys.readouterr().out

    def test_export_csv(self, store, data_dir, tmp_path):
        """The export joins list fields with a pipe."""
        store.write("single-oils", [lavender()])
        target = tmp_path / "export" / "products.csv"

        cli.main(["--export-csv", str(target), "--data-dir", str(data_dir)])

        with open(target, encoding="utf-8-sig", newline="") as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["name"] == "薰衣草精油"
        assert rows[0]["main_benefits"] == "促進安穩睡眠|減輕緊張情緒"
        assert rows[0]["pv_points"] == "36"


class TestRuns:
    """Scrape runs driven from the command line."""

    def test_url_run(self, monkeypatch, capsys, store, data_dir, driver_factory, lavender_html):
        """A --url run scrapes, stores and closes the browser."""
        driver = driver_factory({LAVENDER: lavender_html})
        monkeypatch.setattr("oilscrape.pipeline.create_driver", lambda *args, **kwargs: driver)

        cli.main(["--url", LAVENDER, "--data-dir", str(data_dir)])

        assert driver.closed
        assert store.read("single-oils")[0].product_code == "30010001"
        assert "inserted=1" in capsys.readouterr().out

    def test_driver_failure_exits(self, monkeypatch, data_dir):
        """A browser that cannot start exits with status 1."""
        def failing_driver(*args, **kwargs):
            raise DriverInitError("chromium missing")

        monkeypatch.setattr("oilscrape.pipeline.create_driver", failing_driver)

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["--data-dir", str(data_dir)])

        assert excinfo.value.code == 1
