import pytest

from tokenledger.core.exceptions import NotFoundError, ValidationError
from tokenledger.services import history

pytestmark = pytest.mark.asyncio


async def test_history_includes_sent_and_received_newest_first(ledger, make_account):
    alice = await make_account("alice@example.com", balance=50)
    bob = await make_account("bob@example.com", balance=50)
    carol = await make_account("carol@example.com", balance=50)

    await ledger.transfer(alice.id, "bob@example.com", 1, "first")
    await ledger.transfer(bob.id, "alice@example.com", 2, "second")
    await ledger.transfer(carol.id, "bob@example.com", 3, "unrelated")
    await ledger.transfer(alice.id, "carol@example.com", 4, "third")

    page = await history.get_history(alice.id, page=1, limit=10)

    assert [t.message for t in page.items] == ["third", "second", "first"]
    assert page.total == 3
    assert page.total_pages == 1
    assert not page.has_next_page
    assert not page.has_prev_page


async def test_recipient_sees_the_senders_row(ledger, make_account):
    alice = await make_account("alice@example.com", balance=10)
    bob = await make_account("bob@example.com")

    result = await ledger.transfer(alice.id, "bob@example.com", 5, "for you")

    bob_page = await history.get_history(bob.id)
    assert [t.id for t in bob_page.items] == [result.transaction.id]


async def test_pages_are_disjoint_and_stable(ledger, make_account):
    alice = await make_account("alice@example.com", balance=100)
    await make_account("bob@example.com")
    for i in range(7):
        await ledger.transfer(alice.id, "bob@example.com", 1, f"m{i}")

    first = await history.get_history(alice.id, page=1, limit=3)
    second = await history.get_history(alice.id, page=2, limit=3)
    third = await history.get_history(alice.id, page=3, limit=3)
    again = await history.get_history(alice.id, page=2, limit=3)

    ids = [t.id for p in (first, second, third) for t in p.items]
    assert len(ids) == 7
    assert len(set(ids)) == 7
    assert [t.id for t in again.items] == [t.id for t in second.items]
    assert first.total_pages == 3
    assert first.has_next_page and not first.has_prev_page
    assert third.has_prev_page and not third.has_next_page
    assert [t.message for t in first.items] == ["m6", "m5", "m4"]


async def test_history_clamps_page_and_limit(make_account):
    alice = await make_account("alice@example.com")

    page = await history.get_history(alice.id, page=0, limit=10_000)

    assert page.current_page == 1
    assert page.limit == 100
    assert page.total == 0
    assert page.total_pages == 0


async def test_history_for_invalid_id():
    with pytest.raises(NotFoundError):
        await history.get_history("nope")


async def test_leaderboard_sent_and_received(ledger, redemptions, make_account, make_reward):
    alice = await make_account("alice@example.com", balance=100, name="Alice")
    bob = await make_account("bob@example.com", balance=100, name="Bob")
    await make_account("carol@example.com", balance=100, name="Carol")
    reward = await make_reward(token_cost=50)

    await ledger.transfer(alice.id, "bob@example.com", 10, "a")
    await ledger.transfer(alice.id, "carol@example.com", 5, "b")
    await ledger.transfer(bob.id, "carol@example.com", 20, "c")
    # redemptions never count towards the leaderboard
    await redemptions.redeem(alice.id, reward.id)

    sent = await history.aggregate_leaderboard("sent", 10)
    received = await history.aggregate_leaderboard("received", 10)

    assert [(e.name, e.total, e.transactions) for e in sent] == [("Bob", 20, 1), ("Alice", 15, 2)]
    assert [(e.email, e.total) for e in received] == [("carol@example.com", 25), ("bob@example.com", 10)]


async def test_leaderboard_ties_break_by_account_id(ledger, make_account):
    alice = await make_account("alice@example.com", balance=10)
    bob = await make_account("bob@example.com", balance=10)
    await make_account("carol@example.com")

    await ledger.transfer(bob.id, "carol@example.com", 5, "x")
    await ledger.transfer(alice.id, "carol@example.com", 5, "y")

    sent = await history.aggregate_leaderboard("sent", 10)

    assert [e.account_id for e in sent] == sorted([str(alice.id), str(bob.id)])


async def test_leaderboard_limit_and_kind(ledger, make_account):
    alice = await make_account("alice@example.com", balance=10)
    bob = await make_account("bob@example.com", balance=10)
    await make_account("carol@example.com")
    await ledger.transfer(alice.id, "carol@example.com", 1, "x")
    await ledger.transfer(bob.id, "carol@example.com", 2, "y")

    top = await history.aggregate_leaderboard("sent", 1)

    assert [e.email for e in top] == ["bob@example.com"]
    with pytest.raises(ValidationError):
        await history.aggregate_leaderboard("spent", 10)


async def test_recent_transactions(ledger, redemptions, make_account, make_reward):
    alice = await make_account("alice@example.com", balance=30)
    await make_account("bob@example.com")
    reward = await make_reward(token_cost=5)
    await ledger.transfer(alice.id, "bob@example.com", 1, "one")
    await ledger.transfer(alice.id, "bob@example.com", 2, "two")
    await redemptions.redeem(alice.id, reward.id)

    recent = await history.get_recent_transactions(2)

    assert [t.amount for t in recent] == [-5, 2]


async def test_account_stats(ledger, redemptions, make_account, make_reward):
    alice = await make_account("alice@example.com", balance=30)
    bob = await make_account("bob@example.com", balance=10)
    reward = await make_reward(token_cost=5)
    await ledger.transfer(alice.id, "bob@example.com", 7, "one")
    await ledger.transfer(bob.id, "alice@example.com", 3, "two")
    await redemptions.redeem(alice.id, reward.id)

    stats = await history.get_account_stats(alice.id)

    assert stats.total_sent == 7
    assert stats.total_received == 3
    assert stats.total_transactions == 3
    assert stats.current_balance == 21
