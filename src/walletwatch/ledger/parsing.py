"""Turn jsonParsed RPC payloads into ledger events."""

from __future__ import annotations

from typing import Any

from walletwatch.core.constants import (
    LAMPORTS_PER_SOL,
    NON_COUNTERPARTY_ACCOUNTS,
    TOKEN_INTERACTION_TYPES,
)
from walletwatch.ledger.models import LedgerEvent, TokenBalanceChange


def _account_keys(tx: dict[str, Any]) -> list[str]:
    keys = tx.get("transaction", {}).get("message", {}).get("accountKeys", [])
    result: list[str] = []
    for key in keys:
        if isinstance(key, dict):
            result.append(key.get("pubkey", ""))
        else:
            result.append(str(key))
    return result


def _parsed_instructions(tx: dict[str, Any]) -> list[dict[str, Any]]:
    """Inner instructions first (where token programs usually run), then top level."""
    meta = tx.get("meta") or {}
    instructions: list[dict[str, Any]] = []
    for inner in meta.get("innerInstructions") or []:
        instructions.extend(inner.get("instructions") or [])
    instructions.extend(tx.get("transaction", {}).get("message", {}).get("instructions") or [])
    return [ix for ix in instructions if isinstance(ix.get("parsed"), dict)]


def extract_token_id(tx: dict[str, Any]) -> str | None:
    """Mint touched by the first mintTo/transferChecked instruction, if any."""
    for ix in _parsed_instructions(tx):
        parsed = ix["parsed"]
        if parsed.get("type") in TOKEN_INTERACTION_TYPES:
            mint = (parsed.get("info") or {}).get("mint")
            if mint:
                return str(mint)
    return None


def extract_counterparties(tx: dict[str, Any], source: str) -> tuple[str, ...]:
    """Wallet-level addresses involved in ``tx`` other than ``source``.

    Uses signers, system transfer endpoints and token-balance owners rather
    than raw account keys, which would also include token accounts and
    programs.
    """
    seen: dict[str, None] = {}

    keys = tx.get("transaction", {}).get("message", {}).get("accountKeys", [])
    for key in keys:
        if isinstance(key, dict) and key.get("signer"):
            seen[key.get("pubkey", "")] = None

    for ix in _parsed_instructions(tx):
        if ix.get("program") != "system":
            continue
        info = ix["parsed"].get("info") or {}
        for field in ("source", "destination", "newAccount"):
            if info.get(field):
                seen[info[field]] = None

    meta = tx.get("meta") or {}
    for balance in (meta.get("preTokenBalances") or []) + (meta.get("postTokenBalances") or []):
        owner = balance.get("owner")
        if owner:
            seen[owner] = None

    return tuple(a for a in seen if a and a != source and a not in NON_COUNTERPARTY_ACCOUNTS)


def extract_sol_delta(tx: dict[str, Any], address: str) -> float | None:
    keys = _account_keys(tx)
    meta = tx.get("meta") or {}
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []
    try:
        idx = keys.index(address)
        return (post[idx] - pre[idx]) / LAMPORTS_PER_SOL
    except (ValueError, IndexError):
        return None


def parse_transaction(tx: dict[str, Any], source: str) -> LedgerEvent | None:
    """Build a LedgerEvent from a getTransaction(jsonParsed) result."""
    signatures = tx.get("transaction", {}).get("signatures") or []
    if not signatures:
        return None
    return LedgerEvent(
        signature=signatures[0],
        source=source,
        involved_addresses=extract_counterparties(tx, source),
        token_id=extract_token_id(tx),
        balance_delta=extract_sol_delta(tx, source),
        slot=tx.get("slot"),
    )


def parse_token_account(
    value: dict[str, Any], slot: int | None = None
) -> TokenBalanceChange | None:
    """Build a TokenBalanceChange from a programNotification value."""
    account = value.get("account") or {}
    data = account.get("data") or {}
    if not isinstance(data, dict):
        return None
    info = (data.get("parsed") or {}).get("info") or {}
    mint = info.get("mint")
    owner = info.get("owner")
    if not mint or not owner:
        return None
    ui_amount = (info.get("tokenAmount") or {}).get("uiAmount")
    return TokenBalanceChange(
        owner=owner,
        token_id=mint,
        balance=float(ui_amount or 0.0),
        signature=f"slot:{slot}" if slot is not None else "slot:unknown",
    )
