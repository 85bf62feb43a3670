"""Simulated purchases and referral bonuses."""

from __future__ import annotations

import pytest

from gendesk.errors import AssistantAlreadyOwned, InvalidReferralCode
from gendesk.models import PRICING_PACKAGES, GenerationPackage, find_package
from gendesk.services import referral_service
from gendesk.services.account_store import ACCESS_CODE_PATTERN

PACKAGE_50 = GenerationPackage("test", "Test", 50, "$0")


def test_fresh_purchase_creates_account_without_bonus(repo):
    code, account, created = referral_service.purchase_package(repo, None, PACKAGE_50)

    assert created is True
    assert ACCESS_CODE_PATTERN.match(code)
    assert account.generations == 50
    assert account.referrer_code is None
    assert repo.codes() == [code]
    assert repo.store.load_active_code() == code


def test_top_up_pays_referrer_the_same_amount_once(repo, make_account):
    make_account("BBBBB22222", generations=100)
    buyer = make_account("AAAAA11111", generations=5, referrer_code="BBBBB22222")

    code, account, created = referral_service.purchase_package(repo, buyer, PACKAGE_50)

    assert created is False
    assert code == buyer
    assert account.generations == 55
    assert repo.require("BBBBB22222").generations == 150


def test_new_account_consumes_pending_referral(repo, make_account):
    make_account("BBBBB22222", generations=0)
    assert referral_service.capture_referral(repo, "BBBBB22222") is True

    code, account, created = referral_service.purchase_package(repo, None, PACKAGE_50)

    assert created
    assert account.referrer_code == "BBBBB22222"
    assert repo.require("BBBBB22222").generations == 50
    assert repo.store.load_pending_referral() is None


def test_referrer_that_no_longer_exists_is_ignored(repo, make_account):
    buyer = make_account("AAAAA11111", generations=0, referrer_code="GONE000000")

    _, account, _ = referral_service.purchase_package(repo, buyer, PACKAGE_50)

    assert account.generations == 50
    assert not repo.exists("GONE000000")


def test_capture_rules(repo):
    with pytest.raises(InvalidReferralCode):
        referral_service.capture_referral(repo, "short")
    with pytest.raises(InvalidReferralCode):
        referral_service.capture_referral(repo, "abcde12345")

    assert referral_service.capture_referral(repo, "FIRST00001") is True
    assert referral_service.capture_referral(repo, "SECOND0002") is False
    assert repo.store.load_pending_referral() == "FIRST00001"


def test_capture_ignored_while_logged_in(repo):
    repo.store.save_active_code("ABCDE12345")

    assert referral_service.capture_referral(repo, "FIRST00001") is False
    assert repo.store.load_pending_referral() is None


def test_assistant_purchase_grants_generations_and_flat_bonus(repo, make_account):
    make_account("BBBBB22222", generations=1)
    buyer = make_account("AAAAA11111", generations=2, referrer_code="BBBBB22222")

    code, account, created = referral_service.purchase_assistant(repo, buyer, "mirra")

    assert code == buyer
    assert created is False
    assert account.has_mirra
    assert account.generations == 252
    assert repo.require("BBBBB22222").generations == 251

    with pytest.raises(AssistantAlreadyOwned):
        referral_service.purchase_assistant(repo, buyer, "mirra")
    assert repo.require(buyer).generations == 252


def test_assistant_purchase_without_account_registers_one(repo, make_account):
    make_account("BBBBB22222", generations=4)
    repo.store.save_pending_referral("BBBBB22222")

    code, account, created = referral_service.purchase_assistant(repo, None, "dary")

    assert created is True
    assert ACCESS_CODE_PATTERN.match(code)
    assert account.has_dary
    assert not account.has_mirra
    assert account.generations == 250
    assert account.referrer_code == "BBBBB22222"
    assert repo.require("BBBBB22222").generations == 254
    assert repo.store.load_active_code() == code
    assert repo.store.load_pending_referral() is None


def test_referral_message_is_posted_to_mirra(repo, make_account):
    code = make_account(generations=0, has_mirra=True)

    account, message = referral_service.post_referral_message(repo, code)

    assert f"?ref={code}" in message.text
    assert account.chat_history("mirra")[-1].text == message.text


def test_known_packages():
    assert find_package("nope") is None
    for package in PRICING_PACKAGES:
        assert find_package(package.key) is package
        assert package.generations > 0
