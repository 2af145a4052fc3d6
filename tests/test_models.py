"""Model validation and serialization."""

import pytest

from move_prover.board import STARTING_FEN
from move_prover.digest import chain_link_hash, snapshot_content_hash
from move_prover.models import (
    CapabilityState,
    GameSnapshot,
    GameStatus,
    HistoryStats,
    LastMove,
    ProverStatus,
)


class TestLastMove:
    def test_to_dict_uses_short_keys(self):
        assert LastMove("e2", "e4").to_dict() == {"from": "e2", "to": "e4"}
        assert LastMove("e4", "d5", "p").to_dict()["captured"] == "p"

    @pytest.mark.parametrize("bad", ["e9", "z2", "E2", ""])
    def test_invalid_square(self, bad):
        with pytest.raises(ValueError):
            LastMove(bad, "e4")


class TestGameSnapshot:
    def test_from_dict_inverts_to_dict(self):
        snapshot = GameSnapshot(
            fen=STARTING_FEN,
            last_move=LastMove("e2", "e4"),
            move_number=1,
            turn="b",
            status=GameStatus.CHECK,
            session_id="s",
        )
        assert GameSnapshot.from_dict(snapshot.to_dict()) == snapshot

    def test_negative_move_number_rejected(self):
        with pytest.raises(ValueError):
            GameSnapshot(fen=STARTING_FEN, move_number=-1)

    def test_invalid_turn_rejected(self):
        with pytest.raises(ValueError):
            GameSnapshot(fen=STARTING_FEN, turn="x")


class TestDigest:
    def test_content_hash_is_stable_and_content_sensitive(self):
        a = GameSnapshot(fen=STARTING_FEN, move_number=1)
        b = GameSnapshot(fen=STARTING_FEN, move_number=1)
        c = GameSnapshot(fen=STARTING_FEN, move_number=2)
        assert snapshot_content_hash(a) == snapshot_content_hash(b)
        assert snapshot_content_hash(a) != snapshot_content_hash(c)
        assert len(snapshot_content_hash(a)) == 64

    def test_chain_link_differs_from_content_hash(self):
        h = snapshot_content_hash(GameSnapshot(fen=STARTING_FEN))
        assert chain_link_hash(h) != h
        assert chain_link_hash(h) == chain_link_hash(h)


class TestStatusModels:
    def test_real_percentage(self):
        stats = HistoryStats(4, 10.0, 100.0, real_count=1, fallback_count=3)
        assert stats.real_percentage == 25.0
        assert HistoryStats(0, 0.0, 0.0, 0, 0).real_percentage == 0.0

    def test_uninitialized_status_is_not_using_real_proofs(self):
        status = ProverStatus(CapabilityState.UNINITIALIZED, "Enhanced-Mock", 0, 0, 0)
        assert status.initialized is False
        assert status.using_real_proofs is False
        assert status.to_dict()["state"] == "uninitialized"
