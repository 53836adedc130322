"""
Unit tests for scanner/cross_market.py -- pairing and the five safety filters.
"""

from decimal import Decimal

from scanner.cross_market import CrossMarketDetector, DetectorConfig
from scanner.models import MarketQuotes, MarketSnapshot, OutcomeQuote

D = Decimal


def _snapshot(a_up=None, a_down=None, b_up=None, b_down=None, observed_at=1_700_000_000.0):
    def q(token, ask):
        return OutcomeQuote(token_id=token, bid=None, ask=None if ask is None else D(ask))

    return MarketSnapshot(
        market_a=MarketQuotes("cond-eth", "ETH", up=q("eth-up", a_up), down=q("eth-down", a_down)),
        market_b=MarketQuotes("cond-btc", "BTC", up=q("btc-up", b_up), down=q("btc-down", b_down)),
        observed_at=observed_at,
    )


def _detector(**overrides):
    params = dict(min_profit_threshold=D("0.02"))
    params.update(overrides)
    return CrossMarketDetector(DetectorConfig(**params))


class TestPairing:
    def test_up_down_pair_emitted(self):
        """0.45 + 0.50 = 0.95 < 0.99, profit 0.05 >= 0.02."""
        opps = _detector().detect(_snapshot(a_up="0.45", b_down="0.50"))
        assert len(opps) == 1
        opp = opps[0]
        assert opp.token_a == "eth-up"
        assert opp.token_b == "btc-down"
        assert opp.total_cost == D("0.95")
        assert opp.expected_profit == D("0.05")
        assert opp.market_a_id == "cond-eth"
        assert opp.market_b_id == "cond-btc"
        assert opp.label == "ETH UP + BTC DOWN"

    def test_down_up_pair_emitted(self):
        opps = _detector().detect(_snapshot(a_down="0.40", b_up="0.55"))
        assert len(opps) == 1
        assert opps[0].token_a == "eth-down"
        assert opps[0].token_b == "btc-up"
        assert opps[0].label == "ETH DOWN + BTC UP"

    def test_both_pairings_independent(self):
        opps = _detector().detect(
            _snapshot(a_up="0.45", a_down="0.40", b_up="0.55", b_down="0.50")
        )
        assert [o.label for o in opps] == ["ETH UP + BTC DOWN", "ETH DOWN + BTC UP"]

    def test_missing_asks_skip_pairing(self):
        """No ask on either side -> no opportunity, no error."""
        assert _detector().detect(_snapshot()) == []

    def test_one_missing_ask_skips_pairing(self):
        assert _detector().detect(_snapshot(a_up="0.45")) == []

    def test_missing_quote_object(self):
        snapshot = MarketSnapshot(
            market_a=MarketQuotes("cond-eth", "ETH", up=None, down=None),
            market_b=MarketQuotes("cond-btc", "BTC", up=None, down=None),
        )
        assert _detector().detect(snapshot) == []

    def test_bid_only_is_not_tradeable(self):
        snapshot = MarketSnapshot(
            market_a=MarketQuotes("cond-eth", "ETH", up=OutcomeQuote("eth-up", bid=D("0.45"))),
            market_b=MarketQuotes("cond-btc", "BTC", down=OutcomeQuote("btc-down", ask=D("0.50"))),
        )
        assert _detector().detect(snapshot) == []


class TestFilters:
    def test_both_below_min_reasonable(self):
        """0.10 + 0.10 looks hugely profitable but is a stale/zero quote."""
        det = _detector(min_total_cost=D("0"))
        assert det.detect(_snapshot(a_up="0.10", b_down="0.10")) == []

    def test_one_below_min_reasonable_passes_that_filter(self):
        det = _detector()
        opps = det.detect(_snapshot(a_up="0.10", b_down="0.80"))
        assert len(opps) == 1
        assert opps[0].total_cost == D("0.90")

    def test_both_above_max_reasonable(self):
        det = _detector(max_sum_threshold=D("5"), min_profit_threshold=D("-5"))
        assert det.detect(_snapshot(a_up="0.96", b_down="0.97")) == []

    def test_below_min_total_cost(self):
        """0.20 + 0.25 = 0.45 < 0.50 -> corrupted feed."""
        assert _detector().detect(_snapshot(a_up="0.20", b_down="0.25")) == []

    def test_sum_equal_to_max_sum_rejected(self):
        """Boundary: total == max_sum_threshold is rejected (>=)."""
        assert _detector().detect(_snapshot(a_up="0.49", b_down="0.50")) == []

    def test_sum_just_below_max_sum(self):
        det = _detector(min_profit_threshold=D("0.005"))
        opps = det.detect(_snapshot(a_up="0.489", b_down="0.50"))
        assert len(opps) == 1
        assert opps[0].expected_profit == D("0.011")

    def test_profit_below_threshold(self):
        """0.97 total passes max_sum but 3% < 5% min profit."""
        det = _detector(min_profit_threshold=D("0.05"))
        assert det.detect(_snapshot(a_up="0.47", b_down="0.50")) == []

    def test_profit_equal_to_threshold_accepted(self):
        det = _detector(min_profit_threshold=D("0.05"))
        assert len(det.detect(_snapshot(a_up="0.45", b_down="0.50"))) == 1


class TestPurity:
    def test_same_snapshot_same_result(self):
        """Re-running on an identical snapshot yields identical lists."""
        det = _detector()
        snapshot = _snapshot(a_up="0.45", a_down="0.40", b_up="0.55", b_down="0.50")
        assert det.detect(snapshot) == det.detect(snapshot)

    def test_opportunity_carries_snapshot_time(self):
        opps = _detector().detect(_snapshot(a_up="0.45", b_down="0.50", observed_at=123.0))
        assert opps[0].observed_at == 123.0

    def test_default_config(self):
        cfg = CrossMarketDetector().config
        assert cfg.max_sum_threshold == D("0.99")
        assert cfg.min_reasonable_price == D("0.15")
        assert cfg.max_reasonable_price == D("0.95")
        assert cfg.min_total_cost == D("0.50")
