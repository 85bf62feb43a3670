"""Referral capture and the simulated purchase flow that pays referral bonuses."""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional, Tuple

from gendesk.errors import AssistantAlreadyOwned, InvalidReferralCode
from gendesk.models import ASSISTANTS, Account, ChatMessage, GenerationPackage
from gendesk.services.account_repository import AccountRepository
from gendesk.services.account_store import ACCESS_CODE_PATTERN
from gendesk.services.history_service import append_chat_message
from gendesk.services.quota_ledger import credit
from gendesk.utils.auth import now_millis

_LOGGER = logging.getLogger(__name__)

ASSISTANT_PURCHASE_GENERATIONS = 250
ASSISTANT_REFERRAL_BONUS = 250

REFERRAL_BASE_URL = os.getenv("REFERRAL_BASE_URL", "https://aipomochnik.ru")


def is_valid_referral_code(value: Optional[str]) -> bool:
    return bool(value) and ACCESS_CODE_PATTERN.match(value) is not None


def capture_referral(repo: AccountRepository, ref: str) -> bool:
    """Remember an inbound ``ref`` code for the next account created on this device.

    The code is kept only when nobody is logged in and no referral is
    already pending; the first captured code wins.

    Returns:
        True when the code was stored.
    """
    if not is_valid_referral_code(ref):
        raise InvalidReferralCode(ref)

    store = repo.store
    if store.load_active_code() or store.load_pending_referral():
        return False

    store.save_pending_referral(ref)
    _LOGGER.info("Captured referral code %s", ref)
    return True


def _with_referral_bonus(accounts: Dict[str, Account], buyer: Account, bonus: int) -> Dict[str, Account]:
    """Return the referrer's credited entry, if the buyer has an existing referrer."""
    referrer_code = buyer.referrer_code
    if not referrer_code or bonus <= 0:
        return {}
    referrer = accounts.get(referrer_code)
    if referrer is None:
        return {}
    return {referrer_code: credit(referrer, bonus)}


def purchase_package(
    repo: AccountRepository,
    active_code: Optional[str],
    package: GenerationPackage,
) -> Tuple[str, Account, bool]:
    """Simulate buying ``package``.

    With no active account a new one is created, consuming any pending
    referral code; otherwise the active account is topped up. In both
    cases the buyer's referrer, if any, is credited the same amount.

    Returns:
        ``(code, account, created)`` for the buyer.
    """
    created = not active_code or not repo.exists(active_code)
    code = repo.new_code() if created else active_code
    pending = repo.store.load_pending_referral() if created else None

    def apply(accounts: Dict[str, Account]) -> Dict[str, Account]:
        if created:
            buyer = Account(generations=package.generations, referrer_code=pending)
        else:
            buyer = credit(accounts[code], package.generations)
        changes = {code: buyer}
        changes.update(_with_referral_bonus(accounts, buyer, package.generations))
        return changes

    changes = repo.transact_many(apply)

    if created:
        repo.store.clear_pending_referral()
        repo.store.save_active_code(code)

    buyer = changes[code]
    for other in changes:
        if other != code:
            _LOGGER.info("Credited referrer %s with %d generations for %s", other, package.generations, code)
    _LOGGER.info("Package %s purchased for %s (new account: %s)", package.key, code, created)
    return code, buyer, created


def purchase_assistant(
    repo: AccountRepository,
    active_code: Optional[str],
    assistant: str,
) -> Tuple[str, Account, bool]:
    """Grant an assistant plus its bundled generations, paying the flat referral bonus.

    Like a package purchase, buying an assistant with no active account
    registers a new one and consumes any pending referral code.

    Returns:
        ``(code, account, created)`` for the buyer.
    """
    if assistant not in ASSISTANTS:
        raise ValueError(f"Unknown assistant: {assistant}")

    created = not active_code or not repo.exists(active_code)
    code = repo.new_code() if created else active_code
    pending = repo.store.load_pending_referral() if created else None

    def apply(accounts: Dict[str, Account]) -> Dict[str, Account]:
        if created:
            account = Account(generations=0, referrer_code=pending)
        else:
            account = accounts[code]
            if account.has_assistant(assistant):
                raise AssistantAlreadyOwned(assistant)
        buyer = credit(account.with_assistant(assistant), ASSISTANT_PURCHASE_GENERATIONS)
        changes = {code: buyer}
        changes.update(_with_referral_bonus(accounts, buyer, ASSISTANT_REFERRAL_BONUS))
        return changes

    changes = repo.transact_many(apply)

    if created:
        repo.store.clear_pending_referral()
        repo.store.save_active_code(code)

    for other in changes:
        if other != code:
            _LOGGER.info("Credited referrer %s with %d generations for %s", other, ASSISTANT_REFERRAL_BONUS, code)
    _LOGGER.info("Assistant %s purchased for %s (new account: %s)", assistant, code, created)
    return code, changes[code], created


def referral_link(code: str) -> str:
    return f"{REFERRAL_BASE_URL}?ref={code}"


def referral_message(code: str) -> ChatMessage:
    """Canned Mirra reply carrying the user's referral link and the program rules."""
    text = (
        "Here is your personal referral link:\n\n"
        f"{referral_link(code)}\n\n"
        "How it works:\n"
        "- Share the link with friends.\n"
        "- A friend who opens it and buys their first package becomes your referral.\n"
        "- Every time they buy a package you receive the same number of generations.\n"
        f"- When they buy an assistant you receive {ASSISTANT_REFERRAL_BONUS} generations."
    )
    return ChatMessage(role="model", text=text, timestamp=now_millis())


def post_referral_message(repo: AccountRepository, code: str) -> Tuple[Account, ChatMessage]:
    """Append the referral link message to Mirra's chat, honoring the memory setting."""
    message = referral_message(code)
    account = repo.transact(code, lambda acc: append_chat_message(acc, "mirra", message))
    return account, message
