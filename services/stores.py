"""Interfaces of the external stores the pipeline reads from and writes to."""

from typing import Optional, Protocol

from config.schemas import (
    CostModel, EmailRecord, EvaluationForm, EvaluationRecord, InteractionRecord, MessageRecord,
)


class FormStore(Protocol):
    def get_form(self, form_id: str) -> Optional[EvaluationForm]: ...


class InteractionStore(Protocol):
    def get_interaction(self, interaction_id: str) -> Optional[InteractionRecord]: ...

    def mark_evaluated(self, interaction_id: str, evaluation_id: str) -> None: ...


class MessageStore(Protocol):
    def get_messages(self, interaction_id: str) -> list[MessageRecord]: ...

    def get_emails(self, interaction_id: str) -> list[EmailRecord]: ...


class EvaluationStore(Protocol):
    def save_evaluation(self, record: EvaluationRecord) -> str:
        """Persist a complete record; returns the evaluation id."""
        ...

    def update_evaluation(self, evaluation_id: str, record: EvaluationRecord) -> None: ...

    def attach_cost(self, evaluation_id: str, cost: CostModel) -> None: ...
