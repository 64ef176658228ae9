"""Tests for the cost estimator and ledger debit."""

import pytest
from unittest.mock import MagicMock, patch

from analysis.costs import CostEstimator, debit_description, estimate_cost
from config.errors import LedgerError
from config.schemas import LedgerBalance, Usage
from config.settings import PriceTable
from services.ledger.client import CreditLedgerClient


USAGE = Usage(prompt_tokens=1000, completion_tokens=200, total_tokens=1200)


class TestEstimateCost:
    def test_voice_channel_pays_stt(self):
        cost = estimate_cost(PriceTable(), usage=USAGE, duration_seconds=120, channel="call")
        assert cost.stt_duration == 120
        assert cost.stt_cost == pytest.approx(2 * 0.0052)
        assert cost.prompt_cost == pytest.approx(1000 * 0.00005)
        assert cost.completion_cost == pytest.approx(200 * 0.00015)
        assert cost.total_cost == pytest.approx(cost.stt_cost + cost.prompt_cost + cost.completion_cost)

    def test_price_is_cost_with_markup(self):
        cost = estimate_cost(PriceTable(), usage=USAGE, duration_seconds=60, channel="call")
        assert cost.stt_price == pytest.approx(0.0065)
        assert cost.prompt_price == pytest.approx(1000 * 0.0000625)
        assert cost.completion_price == pytest.approx(200 * 0.0001875)
        assert cost.total_price == pytest.approx(cost.total_cost * 1.25)

    @pytest.mark.parametrize("channel", ["email", "whatsapp", "chat", "sms", "instagram_dm"])
    def test_text_channels_pay_no_stt(self, channel):
        cost = estimate_cost(PriceTable(), usage=USAGE, duration_seconds=900, channel=channel)
        assert cost.stt_duration == 0
        assert cost.stt_cost == 0
        assert cost.stt_price == 0
        assert cost.total_cost == pytest.approx(cost.prompt_cost + cost.completion_cost)

    def test_per_provider_rate_and_explicit_price(self):
        table = PriceTable(stt_cost_per_minute={"soniox": 0.002}, stt_price_per_minute=0.01)
        cost = estimate_cost(table, usage=Usage(), duration_seconds=60, channel="call", stt_provider="soniox")
        assert cost.stt_cost == pytest.approx(0.002)
        assert cost.stt_price == pytest.approx(0.01)
        assert cost.stt_provider == "soniox"

    def test_price_table_from_env(self):
        env = {"COST_STT_PRERECORDED": "0.01", "COST_STT_DEEPGRAM": "0.004", "PRICE_OPENAI_GPT4O_INPUT": "0.0001"}
        with patch.dict("os.environ", env, clear=False):
            table = PriceTable.from_env()
        assert table.stt_cost_rate("assemblyai") == 0.01
        assert table.stt_cost_rate("deepgram") == 0.004
        assert table.prompt_price_rate() == 0.0001

    def test_debit_description(self):
        assert debit_description("ev1", 125.4, USAGE) == "Evaluation: ev1 - 125 seconds, 1200 tokens"


class TestLedgerDebit:
    def test_debits_total_price(self):
        ledger = MagicMock()
        ledger.is_configured.return_value = True
        ledger.debit.return_value = LedgerBalance(current_balance=42.0, is_low=False)
        estimator = CostEstimator(PriceTable(), ledger)

        cost = estimator.record("ev1", usage=USAGE, duration_seconds=60, channel="call")

        amount, evaluation_id, description = ledger.debit.call_args.args
        assert amount == pytest.approx(cost.total_price)
        assert evaluation_id == "ev1"
        assert description.startswith("Evaluation: ev1")

    def test_ledger_failure_is_swallowed(self):
        ledger = MagicMock()
        ledger.is_configured.return_value = True
        ledger.debit.side_effect = LedgerError("insufficient credits")
        cost = CostEstimator(PriceTable(), ledger).record("ev1", usage=USAGE, duration_seconds=60, channel="call")
        assert cost.total_price > 0

    def test_low_balance_still_returns_balance(self):
        ledger = MagicMock()
        ledger.is_configured.return_value = True
        ledger.debit.return_value = LedgerBalance(current_balance=0.5, is_low=True)
        estimator = CostEstimator(PriceTable(), ledger)
        cost = estimator.record("ev1", usage=USAGE, duration_seconds=0, channel="chat")
        assert estimator.charge("ev1", cost, 0, USAGE).is_low is True

    def test_unconfigured_ledger_skips_debit(self):
        estimator = CostEstimator(PriceTable(), CreditLedgerClient(None))
        cost = estimator.record("ev1", usage=USAGE, duration_seconds=60, channel="call")
        assert estimator.charge("ev1", cost, 60, USAGE) is None


class TestCreditLedgerClient:
    def test_debit_posts_and_parses_balance(self):
        response = MagicMock()
        response.json.return_value = {"currentBalance": 10.5, "isLow": True}
        response.raise_for_status.return_value = None
        with patch("services.ledger.client.requests.post", return_value=response) as post:
            balance = CreditLedgerClient("https://ledger.example", api_key="lk").debit(1.25, "ev1", "desc")

        assert balance.current_balance == 10.5
        assert balance.is_low is True
        body = post.call_args.kwargs["json"]
        assert body == {"amount": 1.25, "evaluationId": "ev1", "description": "desc"}
        assert post.call_args.args[0] == "https://ledger.example/debit"
        assert post.call_args.kwargs["headers"]["X-API-Key"] == "lk"

    def test_http_failure_raises_ledger_error(self):
        with patch("services.ledger.client.requests.post", side_effect=ConnectionError("down")):
            with pytest.raises(LedgerError):
                CreditLedgerClient("https://ledger.example").debit(1.0, "ev1", "desc")
