"""Cost estimator — turn audio duration and token usage into cost and price.

STT is only charged for voice channels. Price is cost at the configured markup (or an
explicit price rate). The total price is debited from the credit ledger; a ledger failure is
logged and never rolls back the evaluation.
"""

from loguru import logger

from analysis.instructions import is_text_channel
from config.schemas import CostModel, LedgerBalance, Usage
from config.settings import PriceTable
from services.ledger.client import CreditLedgerClient


def estimate_cost(
    price_table: PriceTable,
    *,
    usage: Usage,
    duration_seconds: float,
    channel: str,
    stt_provider: str | None = None,
) -> CostModel:
    """Compute a CostModel for one evaluation.

    Args:
        price_table: Configured rates
        usage: LLM token usage of the evaluation
        duration_seconds: Audio duration (ignored for text channels)
        channel: Interaction channel name
        stt_provider: Provider that produced the transcript, for per-provider STT rates
    """
    voice = not is_text_channel(channel)
    stt_duration = float(duration_seconds) if voice else 0.0
    minutes = stt_duration / 60.0

    stt_cost = minutes * price_table.stt_cost_rate(stt_provider) if voice else 0.0
    stt_price = minutes * price_table.stt_price_rate(stt_provider) if voice else 0.0
    prompt_cost = usage.prompt_tokens * price_table.prompt_cost_per_token
    completion_cost = usage.completion_tokens * price_table.completion_cost_per_token
    prompt_price = usage.prompt_tokens * price_table.prompt_price_rate()
    completion_price = usage.completion_tokens * price_table.completion_price_rate()

    return CostModel(
        stt_duration=stt_duration,
        stt_provider=stt_provider if voice else None,
        stt_cost=stt_cost,
        stt_price=stt_price,
        prompt_tokens=usage.prompt_tokens,
        completion_tokens=usage.completion_tokens,
        prompt_cost=prompt_cost,
        completion_cost=completion_cost,
        prompt_price=prompt_price,
        completion_price=completion_price,
        total_cost=stt_cost + prompt_cost + completion_cost,
        total_price=stt_price + prompt_price + completion_price,
    )


def debit_description(evaluation_id: str, duration_seconds: float, usage: Usage) -> str:
    tokens = usage.total_tokens or (usage.prompt_tokens + usage.completion_tokens)
    return f"Evaluation: {evaluation_id} - {round(duration_seconds)} seconds, {tokens} tokens"


class CostEstimator:
    """Computes the cost of each evaluation and debits its price from the credit ledger."""

    def __init__(self, price_table: PriceTable, ledger: CreditLedgerClient | None = None):
        self.price_table = price_table
        self.ledger = ledger

    def record(
        self,
        evaluation_id: str,
        *,
        usage: Usage,
        duration_seconds: float,
        channel: str,
        stt_provider: str | None = None,
    ) -> CostModel:
        cost = estimate_cost(
            self.price_table, usage=usage, duration_seconds=duration_seconds,
            channel=channel, stt_provider=stt_provider,
        )
        logger.info(
            f"[{evaluation_id}] Cost {cost.total_cost:.6f} / price {cost.total_price:.6f} "
            f"(stt {cost.stt_duration:.0f}s, {cost.prompt_tokens}+{cost.completion_tokens} tokens)"
        )
        self.charge(evaluation_id, cost, duration_seconds, usage)
        return cost

    def charge(self, evaluation_id: str, cost: CostModel, duration_seconds: float, usage: Usage) -> LedgerBalance | None:
        if self.ledger is None or not self.ledger.is_configured():
            logger.debug(f"[{evaluation_id}] Credit ledger not configured, skipping debit")
            return None
        try:
            balance = self.ledger.debit(
                cost.total_price, evaluation_id, debit_description(evaluation_id, duration_seconds, usage)
            )
        except Exception as e:
            logger.warning(f"[{evaluation_id}] Credit debit failed (evaluation kept): {e}")
            return None
        if balance.is_low:
            logger.warning(f"[{evaluation_id}] Credit balance is low: {balance.current_balance}")
        return balance
