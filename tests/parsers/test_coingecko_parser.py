import json
import unittest
from datetime import datetime
from pathlib import Path

from ingestor.parsers import ParsingError
from ingestor.parsers.coingecko import CoinGeckoMarketsParser

FIXTURE_DIR = Path(__file__).resolve().parent.parent / "fixtures"
MARKETS_FIXTURE = FIXTURE_DIR / "coingecko_markets.json"

CAPTURED_AT = datetime(2024, 5, 1, 12, 0, 0)


class CoinGeckoMarketsParserTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = CoinGeckoMarketsParser()
        self.payload = json.loads(MARKETS_FIXTURE.read_text(encoding="utf-8"))

    def test_parse_market_rows(self) -> None:
        quotes = self.parser.parse(self.payload, captured_at=CAPTURED_AT)

        self.assertEqual([quote.symbol for quote in quotes], ["BTC", "ETH", "NEW"])
        # Payload position counts the skipped row
        self.assertEqual([quote.position for quote in quotes], [1, 2, 4])
        bitcoin = quotes[0]
        self.assertEqual(bitcoin.name, "Bitcoin")
        self.assertAlmostEqual(bitcoin.price, 64250.12)
        self.assertAlmostEqual(bitcoin.market_cap, 1265000000000)
        self.assertAlmostEqual(bitcoin.change_24h, 1.84)
        self.assertAlmostEqual(bitcoin.volume_24h, 28500000000)
        self.assertEqual(bitcoin.rank, 1)
        self.assertTrue(bitcoin.image.endswith("bitcoin.png"))
        self.assertEqual(bitcoin.captured_at, CAPTURED_AT)
        self.assertEqual(bitcoin.identity, "BTC")

    def test_missing_numbers_default_to_zero(self) -> None:
        fresh = self.parser.parse(self.payload, captured_at=CAPTURED_AT)[-1]

        self.assertEqual(fresh.market_cap, 0.0)
        self.assertEqual(fresh.change_24h, 0.0)
        self.assertEqual(fresh.volume_24h, 0.0)
        self.assertEqual(fresh.rank, 0)
        self.assertEqual(fresh.image, "")

    def test_non_object_rows_are_skipped(self) -> None:
        quotes = self.parser.parse(["oops", {"symbol": "sol", "name": "Solana"}], captured_at=CAPTURED_AT)

        self.assertEqual([quote.symbol for quote in quotes], ["SOL"])

    def test_non_array_payload_raises(self) -> None:
        with self.assertRaises(ParsingError):
            self.parser.parse({"error": "rate limited"}, captured_at=CAPTURED_AT)

    def test_empty_array_returns_empty_list(self) -> None:
        self.assertEqual(self.parser.parse([], captured_at=CAPTURED_AT), [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
