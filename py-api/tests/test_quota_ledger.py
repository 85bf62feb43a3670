"""Balance debits and the atomic storage cap."""

from __future__ import annotations

import pytest

from gendesk.errors import InsufficientBalance, StorageLimitExceeded
from gendesk.models import Account
from gendesk.services import costs
from gendesk.services.history_service import new_generation_record, record_generation
from gendesk.services.quota_ledger import credit, debit, ensure_balance


@pytest.mark.parametrize("balance,cost", [(0, 1), (1, 2), (4, 5), (10, 0), (10, 10), (25, 3)])
def test_debit_is_exact_or_rejected_with_shortfall(balance, cost):
    account = Account(generations=balance)

    if balance < cost:
        with pytest.raises(InsufficientBalance) as excinfo:
            debit(account, cost)
        assert excinfo.value.shortfall == cost - balance
        assert account.generations == balance
    else:
        assert debit(account, cost).generations == balance - cost
        assert account.generations == balance


def test_credit_and_negative_amounts():
    assert credit(Account(generations=3), 50).generations == 53
    with pytest.raises(ValueError):
        credit(Account(), -1)
    with pytest.raises(ValueError):
        debit(Account(generations=5), -1)


def test_ensure_balance_reports_required_and_available():
    ensure_balance(Account(generations=2), 2)
    with pytest.raises(InsufficientBalance) as excinfo:
        ensure_balance(Account(generations=1), 2)
    assert excinfo.value.required == 2
    assert excinfo.value.available == 1
    assert excinfo.value.status_code == 402


def test_storage_cap_rejection_leaves_map_byte_identical(repo, make_account):
    code = make_account(generations=5, max_storage_size=600)
    before = repo.serialized()

    record = new_generation_record("essay", "Big one", "x" * 2000)
    with pytest.raises(StorageLimitExceeded) as excinfo:
        repo.transact(code, lambda account: record_generation(debit(account, 1), record))

    assert excinfo.value.limit == 600
    assert repo.serialized() == before
    assert repo.require(code).generations == 5


def test_storage_cap_skipped_for_debits(repo, make_account):
    code = make_account(generations=5, max_storage_size=1)

    account = repo.transact(code, lambda acc: debit(acc, 2), check_storage=False)

    assert account.generations == 3


def test_costs_of_variable_operations():
    assert costs.rewriting_cost("", True) == 1
    assert costs.rewriting_cost("a" * 5001, True) == 3
    assert costs.rewriting_cost(None, False) == 1
    assert costs.audio_script_cost(3) == 2
    assert costs.audio_script_cost(11) == 6
    assert costs.thesis_cost(
        [
            {"contentType": "generate", "pagesToGenerate": 3},
            {"contentType": "text", "pagesToGenerate": 9},
            {"contentType": "generate", "pagesToGenerate": 2},
        ]
    ) == 5
    assert costs.assistant_message_cost("hi", "hello") == 1
    assert costs.assistant_message_cost("a" * 4000, "b" * 4000, "c" * 3000) == 3
    assert costs.file_task_cost("do_homework") == 2
    assert costs.file_task_cost("solve_control_work") == 1
    assert costs.analysis_cost("analysis_verify") == 3
    assert costs.analysis_cost("analysis_short") == 2
