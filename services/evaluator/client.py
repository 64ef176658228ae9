"""AI evaluator client — POST instructions + transcript, validate the structured evaluation."""

import requests
from loguru import logger
from pydantic import ValidationError

from config.errors import EvaluatorError
from config.schemas import EvaluationResponse


class EvaluatorClient:
    def __init__(self, url: str | None, timeout: float = 300.0):
        self.url = url
        self.timeout = timeout

    def evaluate(self, transcription: str, instructions: str) -> EvaluationResponse:
        """Send one transcript for evaluation.

        Args:
            transcription: Formatted transcript text
            instructions: Output of build_instructions()

        Returns:
            Validated EvaluationResponse

        Raises:
            EvaluatorError: endpoint unreachable, non-2xx, or malformed response
        """
        if not self.url:
            raise EvaluatorError("AI evaluator URL is not configured (QAEVALUATION_URL)")

        try:
            # Deployed evaluators read "transcription"; "transcriptionText" is the documented name
            resp = requests.post(
                self.url,
                json={
                    "instructions": instructions,
                    "transcription": transcription,
                    "transcriptionText": transcription,
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as e:
            raise EvaluatorError(f"AI evaluator request failed: {e}") from e
        except ValueError as e:
            raise EvaluatorError(f"AI evaluator returned non-JSON body: {e}") from e

        evaluation = body.get("evaluation") if isinstance(body, dict) else None
        if not isinstance(evaluation, dict) or "parameters" not in evaluation:
            raise EvaluatorError("AI evaluator response is missing evaluation.parameters")

        try:
            result = EvaluationResponse.model_validate({**evaluation, "usage": body.get("usage") or {}})
        except ValidationError as e:
            raise EvaluatorError(f"AI evaluator response failed validation: {e}") from e

        logger.info(
            f"AI evaluation received: {len(result.parameters)} parameters, "
            f"{result.usage.prompt_tokens}+{result.usage.completion_tokens} tokens"
        )
        return result
