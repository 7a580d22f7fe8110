"""Pydantic models for all configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from exchange.comms.socket_channel import DEFAULT_CONNECT_ATTEMPTS, DEFAULT_RETRY_DELAY


class SocketConfig(BaseModel):
    """TCP endpoint and connect policy for separate-process mode."""

    host: str = "localhost"
    port: int = Field(default=8080, ge=0, le=65535)
    connect_attempts: int = Field(default=DEFAULT_CONNECT_ATTEMPTS, ge=1)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0.0)
    connect_timeout: float | None = Field(default=None, gt=0.0)


class PlayersConfig(BaseModel):
    """Identifiers of the two players."""

    initiator_id: str = "Initiator"
    responder_id: str = "Responder"


class ExchangeConfig(BaseModel):
    """Top-level exchange configuration."""

    mode: Literal["same-process", "separate-process"] = "same-process"
    role: Literal["server", "client"] | None = None
    socket: SocketConfig = Field(default_factory=SocketConfig)
    players: PlayersConfig = Field(default_factory=PlayersConfig)

    @model_validator(mode="after")
    def _check_role(self) -> ExchangeConfig:
        if self.mode == "same-process" and self.role is not None:
            raise ValueError("role only applies to separate-process mode")
        return self
