"""Lifecycle interface for background services owned by the gateway."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Service(ABC):
    """A long-running collaborator that is started with the gateway and stopped on shutdown."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
