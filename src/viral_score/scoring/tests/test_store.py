"""
Tests for TokenScoreStore.
"""
from viral_score.scoring import TokenScore


def _scores(**values):
    return {symbol: TokenScore.of(symbol, value) for symbol, value in values.items()}


class TestTokenScoreStore:

    def test_update_and_get_case_insensitive(self, store):
        store.update_cycle(_scores(PEPE=500))
        assert store.get("pepe").value == 500
        assert "Pepe" in store

    def test_cycle_overwrites_and_keeps_others(self, store):
        store.update_cycle(_scores(PEPE=500, DOGE=100))
        store.update_cycle(_scores(PEPE=900))
        assert store.as_dict() == {"PEPE": 900, "DOGE": 100}

    def test_top_excludes_blacklist(self, store):
        store.update_cycle(_scores(MEMEX=9000, M=8000, PEPE=500))
        assert [s.symbol for s in store.top()] == ["PEPE"]
        assert len(store.top(include_blacklisted=True)) == 3

    def test_top_is_stable_on_ties(self, store):
        store.update_cycle(_scores(A=100, B=300, C=100))
        assert [s.symbol for s in store.top()] == ["B", "A", "C"]

    def test_trim_keeps_highest(self, store):
        store.update_cycle(_scores(A=1, B=2, C=3, D=4))
        removed = store.trim(2)
        assert removed == 2
        assert set(store.as_dict()) == {"C", "D"}

    def test_trim_noop_under_limit(self, store):
        store.update_cycle(_scores(A=1))
        assert store.trim(100) == 0
        assert len(store) == 1

    def test_leaderboard_limit(self, store):
        store.update_cycle(_scores(A=1, B=2, C=3))
        assert [s.symbol for s in store.leaderboard(2)] == ["C", "B"]
