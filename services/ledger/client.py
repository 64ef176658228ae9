"""Credit ledger client — debit the customer-facing price of an evaluation."""

import requests
from loguru import logger

from config.errors import LedgerError
from config.schemas import LedgerBalance


class CreditLedgerClient:
    def __init__(self, url: str | None, api_key: str = "", timeout: float = 15.0):
        self.url = (url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.url)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def debit(self, amount: float, evaluation_id: str, description: str) -> LedgerBalance:
        """Deduct credits. Raises LedgerError; callers decide whether that is fatal."""
        if not self.is_configured():
            raise LedgerError("Credit ledger URL is not configured (CREDIT_LEDGER_URL)")
        try:
            resp = requests.post(
                f"{self.url}/debit",
                headers=self._headers(),
                json={"amount": round(amount, 6), "evaluationId": evaluation_id, "description": description},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            balance = LedgerBalance.model_validate(resp.json())
        except Exception as e:
            raise LedgerError(f"Credit debit failed for {evaluation_id}: {e}") from e

        logger.info(f"Debited {amount:.6f} credits for evaluation {evaluation_id} (balance {balance.current_balance})")
        return balance
