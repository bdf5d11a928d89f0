"""Pydantic schemas for phrase registration and claim."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field


class AddressItem(BaseModel):
    """Connection metadata exchanged under a phrase."""

    phrase: str = Field(
        ...,
        min_length=1,
        description="Passphrase agreed out-of-band, e.g. '42-happy-snail'.",
        examples=["42-happy-snail"],
    )
    maddr: str = Field(
        ...,
        min_length=1,
        description="Multiaddr (or any address string) of the registering peer.",
        examples=["/ip4/203.0.113.7/tcp/4001/p2p/12D3KooW..."],
    )


class RegisterResponse(BaseModel):
    """Response body for a successful registration."""

    message: str = Field("Address added successfully")
    data: AddressItem


class StoredEntry(BaseModel):
    """Envelope written to the KV engine for one pending exchange."""

    payload: Dict[str, Any] = Field(
        ..., description="Opaque payload returned verbatim to the claimer."
    )
    created_at: float = Field(
        ..., description="UNIX time in seconds when the entry was registered."
    )
