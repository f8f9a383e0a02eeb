"""Persistence for the payment ledger state."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from cognis.log import get_logger
from cognis.services.payments.models import PaymentState
from cognis.storage.files import atomic_write_json, read_json

logger = get_logger(__name__)


class PaymentStore(ABC):
    @abstractmethod
    def load(self) -> PaymentState:
        ...

    @abstractmethod
    def save(self, state: PaymentState) -> None:
        ...


class FilePaymentStore(PaymentStore):
    def __init__(self, path: Path):
        self._path = path

    def load(self) -> PaymentState:
        try:
            raw = read_json(self._path)
        except (OSError, ValueError) as e:
            logger.warning("payment_store_load_failed", path=str(self._path), error=str(e))
            return PaymentState()
        if raw is None:
            return PaymentState()
        try:
            return PaymentState.model_validate(raw)
        except ValidationError as e:
            logger.warning("payment_store_invalid", path=str(self._path), error=str(e))
            return PaymentState()

    def save(self, state: PaymentState) -> None:
        atomic_write_json(self._path, state.model_dump(mode="json"))


class InMemoryPaymentStore(PaymentStore):
    def __init__(self, state: PaymentState | None = None):
        self._state = state or PaymentState()

    def load(self) -> PaymentState:
        return self._state.model_copy(deep=True)

    def save(self, state: PaymentState) -> None:
        self._state = state.model_copy(deep=True)
