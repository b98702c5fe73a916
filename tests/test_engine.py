# tests/test_engine.py
import itertools

import pytest

from trick_tally.catalog import BonusKind, GamePhase, simple_rules, skull_king_rules
from trick_tally.engine import GameEngine
from trick_tally.errors import NotFoundError, StateError, StorageError, ValidationError
from trick_tally.ranking import RankingEntry
from trick_tally.state import RoundPlayerPatch


def _make_engine(rules=None, names=("Anne", "Bonny")) -> GameEngine:
    counter = itertools.count(1)
    engine = GameEngine(
        rules or skull_king_rules(10),
        id_factory=lambda: f"id{next(counter)}",
    )
    for name in names:
        engine.add_player(name)
    return engine


def _started(rules=None, names=("Anne", "Bonny")) -> GameEngine:
    engine = _make_engine(rules, names)
    engine.start_game()
    return engine


def _ids(engine):
    return [p.id for p in engine.state.players]


# -------------------------------------------------------------------------
# Setup
# -------------------------------------------------------------------------


def test_add_player_assigns_fresh_ids():
    engine = _make_engine(names=("Anne", "Bonny", "Calico"))
    ids = _ids(engine)
    assert len(set(ids)) == 3
    assert [p.display_name for p in engine.state.players] == ["Anne", "Bonny", "Calico"]


def test_add_player_rejects_case_insensitive_duplicate():
    engine = _make_engine()
    with pytest.raises(StateError):
        engine.add_player("  anne ")
    assert engine.state.num_players == 2


def test_add_player_rejects_empty_name():
    engine = _make_engine()
    with pytest.raises(ValidationError):
        engine.add_player("   ")


def test_add_player_caps_at_twelve():
    engine = _make_engine(names=[f"P{i}" for i in range(12)])
    with pytest.raises(StateError):
        engine.add_player("Thirteen")
    assert engine.state.num_players == 12


def test_remove_player_only_in_setup():
    engine = _make_engine(names=("Anne", "Bonny", "Calico"))
    engine.remove_player(_ids(engine)[2])
    assert engine.state.num_players == 2

    with pytest.raises(NotFoundError):
        engine.remove_player("nope")

    engine.start_game()
    with pytest.raises(StateError):
        engine.remove_player(_ids(engine)[0])
    with pytest.raises(StateError):
        engine.add_player("Late")


def test_start_game_needs_two_players():
    engine = _make_engine(names=("Solo",))
    with pytest.raises(StateError):
        engine.start_game()
    assert engine.phase == GamePhase.SETUP
    assert engine.state.rounds == []


def test_start_game_creates_zeroed_round_one():
    engine = _started()
    assert engine.phase == GamePhase.BIDDING
    assert engine.state.current_round_number == 1
    assert len(engine.state.rounds) == 1
    round_one = engine.get_current_round()
    assert round_one.round_number == 1
    assert not round_one.completed
    assert list(round_one.player_data) == _ids(engine)
    for data in round_one.player_data.values():
        assert data.bid == 0 and data.tricks == 0 and data.bonuses == {}


def test_simple_rules_skip_bidding():
    engine = _started(simple_rules(3))
    assert engine.phase == GamePhase.SCORING
    with pytest.raises(StateError):
        engine.submit_bids()


def test_update_player_keeps_id():
    engine = _started()
    pid = _ids(engine)[0]
    engine.update_player(pid, display_name="Mary", avatar_ref="parrot.png")
    player = engine.get_player(pid)
    assert player.display_name == "Mary"
    assert player.avatar_ref == "parrot.png"
    with pytest.raises(StateError):
        engine.update_player(pid, display_name="BONNY")


# -------------------------------------------------------------------------
# Round lifecycle
# -------------------------------------------------------------------------


def test_illegal_transitions_raise_without_mutation():
    engine = _make_engine()
    before = engine.snapshot()
    for action in (
        engine.submit_bids,
        engine.finalize_round,
        engine.advance_round,
        lambda: engine.skip_to_round(3),
        lambda: engine.update_round_player_data(_ids(engine)[0], {"bid": 0}),
    ):
        with pytest.raises(StateError):
            action()
    assert engine.snapshot() == before

    engine.start_game()
    with pytest.raises(StateError):
        engine.finalize_round()  # still bidding
    with pytest.raises(StateError):
        engine.advance_round()
    with pytest.raises(StateError):
        engine.start_game()


def test_full_game_scenario():
    engine = _make_engine(skull_king_rules(2), names=("P1", "P2"))
    p1, p2 = _ids(engine)
    engine.start_game()

    # Round 1: P1 bids 1 and takes 1, P2 bids 0 and takes 0
    engine.update_round_player_data(p1, {"bid": 1})
    engine.update_round_player_data(p2, {"bid": 0})
    engine.submit_bids()
    engine.update_round_player_data(p1, {"tricks": 1})
    engine.update_round_player_data(p2, {"tricks": 0})
    engine.finalize_round()
    assert engine.phase == GamePhase.REVIEW
    assert engine.get_round_score(1, p1).total_round_score == 20
    assert engine.get_round_score(1, p2).total_round_score == 10

    engine.advance_round()
    assert engine.phase == GamePhase.BIDDING
    assert engine.state.current_round_number == 2

    # Round 2: P1 bids 0 and takes 0, P2 bids 2 and takes 2
    engine.update_round_player_data(p1, {"bid": 0})
    engine.update_round_player_data(p2, {"bid": 2})
    engine.submit_bids()
    engine.update_round_player_data(p2, {"tricks": 2})
    engine.finalize_round()
    assert engine.get_round_score(2, p1).total_round_score == 20
    assert engine.get_round_score(2, p2).total_round_score == 40

    engine.advance_round()
    assert engine.phase == GamePhase.FINISHED
    assert len(engine.state.rounds) == 2
    assert engine.get_ranking() == [
        RankingEntry(p2, 50, 1),
        RankingEntry(p1, 40, 2),
    ]


def test_update_round_player_data_is_idempotent():
    engine = _started()
    pid = _ids(engine)[0]
    patch = {"bid": 1, "bonuses": {"pirates_captured": 2}}
    engine.update_round_player_data(pid, patch)
    once = engine.snapshot()
    engine.update_round_player_data(pid, patch)
    assert engine.snapshot() == once
    assert engine.get_current_round().player_data[pid].bonus(BonusKind.PIRATES_CAPTURED) == 2


def test_update_round_player_data_accepts_typed_patch():
    engine = _started()
    pid = _ids(engine)[1]
    engine.update_round_player_data(pid, RoundPlayerPatch(bid=1, tricks=0))
    data = engine.get_current_round().player_data[pid]
    assert (data.bid, data.tricks) == (1, 0)


@pytest.mark.parametrize(
    "patch",
    [
        {"bid": 2},                                   # round 1 allows 0..1
        {"bid": -1},
        {"tricks": -1},
        {"score": 3},                                 # simple mode only
        {"loot_points": 20},                          # loot disabled
        {"freeform_bonus": 5},                        # freeform not allowed
        {"bonuses": {"davy_jones_creatures": 1}},     # extension kind not enabled
        {"bonuses": {"pirates_captured": -1}},
        {"bonuses": {"jolly_roger_14": 1}},           # flag needs a bool
        {"bonus_malus_chips": [5]},                   # not on the menu
        {"bogus": 1},
        {"bid": 1, "tricks": -3},                     # partly valid patch
        {"bonus_malus_chips": 5},                     # not a list
        {"bonuses": ["pirates_captured"]},            # not a mapping
        {"bonuses": {3: 1}},
        None,
        ["bid", 1],
        RoundPlayerPatch(bonuses=[(BonusKind.PIRATES_CAPTURED, 1)]),
        RoundPlayerPatch(bonus_malus_chips=5),
    ],
)
def test_invalid_patches_leave_data_untouched(patch):
    engine = _started()
    pid = _ids(engine)[0]
    before = engine.snapshot()
    with pytest.raises(ValidationError):
        engine.update_round_player_data(pid, patch)
    assert engine.snapshot() == before


def test_simple_mode_rejects_bid_fields():
    engine = _started(simple_rules(3, bonus_values_menu=(5, -5)))
    pid = _ids(engine)[0]
    with pytest.raises(ValidationError):
        engine.update_round_player_data(pid, {"bid": 1})
    engine.update_round_player_data(pid, {"score": 4, "bonus_malus_chips": [5, 5, -5]})
    engine.finalize_round()
    assert engine.get_round_score(1, pid).total_round_score == 9


def test_update_unknown_player():
    engine = _started()
    with pytest.raises(NotFoundError):
        engine.update_round_player_data("ghost", {"bid": 0})


def test_finalized_round_is_frozen():
    engine = _started()
    pid = _ids(engine)[0]
    engine.update_round_player_data(pid, {"bid": 1})
    engine.submit_bids()
    engine.update_round_player_data(pid, {"tricks": 1})
    engine.finalize_round()
    with pytest.raises(StateError):
        engine.update_round_player_data(pid, {"tricks": 0})
    engine.advance_round()
    engine.update_round_player_data(pid, {"bid": 2})
    round_one = engine.state.find_round(1)
    assert round_one.completed
    assert round_one.player_data[pid].bid == 1
    assert round_one.player_data[pid].tricks == 1


def test_skip_to_round_inserts_unscored_rounds():
    engine = _started()
    p1, p2 = _ids(engine)
    engine.update_round_player_data(p1, {"bid": 1, "tricks": 1})
    engine.skip_to_round(4)

    assert engine.phase == GamePhase.BIDDING
    assert engine.state.current_round_number == 4
    assert [r.round_number for r in engine.state.rounds] == [1, 2, 3, 4]
    assert not any(r.completed for r in engine.state.rounds)
    assert engine.get_cumulative_scores() == {p1: 0, p2: 0}
    assert engine.get_round_score(1, p1) is None


def test_skip_from_review_and_validation():
    engine = _started()
    engine.submit_bids()
    engine.finalize_round()
    with pytest.raises(ValidationError):
        engine.skip_to_round(1)
    engine.skip_to_round(3)
    assert engine.state.current_round_number == 3
    assert [r.completed for r in engine.state.rounds] == [True, False, False]


def test_skip_past_last_round_finishes():
    engine = _started(skull_king_rules(3))
    engine.skip_to_round(9)
    assert engine.phase == GamePhase.FINISHED
    assert len(engine.state.rounds) == 1


def test_end_game_early_discards_current_round():
    engine = _started()
    p1, p2 = _ids(engine)
    engine.update_round_player_data(p1, {"bid": 1, "tricks": 1})
    engine.submit_bids()
    engine.end_game_early()
    assert engine.phase == GamePhase.FINISHED
    assert engine.get_cumulative_scores() == {p1: 0, p2: 0}
    with pytest.raises(StateError):
        engine.end_game_early()
    with pytest.raises(StateError):
        engine.update_player(p1, display_name="Late")


def test_new_game_resets_everything():
    engine = _started()
    old_id = engine.state.id
    engine.new_game(simple_rules(4))
    assert engine.state.id != old_id
    assert engine.phase == GamePhase.SETUP
    assert engine.state.players == []
    assert engine.state.rounds == []
    assert engine.rule_set.is_simple


def test_double_stakes_round():
    engine = _started()
    pid = _ids(engine)[0]
    engine.set_double_stakes(True)
    engine.update_round_player_data(pid, {"bid": 1, "tricks": 1})
    engine.submit_bids()
    engine.finalize_round()
    assert engine.get_round_score(1, pid).base_score == 40

    simple = _started(simple_rules(3))
    with pytest.raises(ValidationError):
        simple.set_double_stakes(True)


def test_get_round_score_not_found():
    engine = _started()
    with pytest.raises(NotFoundError):
        engine.get_round_score(5, _ids(engine)[0])
    with pytest.raises(NotFoundError):
        engine.get_round_score(1, "ghost")


def test_observers_receive_snapshots_only_on_success():
    engine = _make_engine()
    seen = []
    engine.add_observer(seen.append)

    engine.start_game()
    assert len(seen) == 1
    assert seen[-1].phase == GamePhase.BIDDING
    assert seen[-1] is not engine.state

    with pytest.raises(StateError):
        engine.finalize_round()
    assert len(seen) == 1

    engine.submit_bids()
    assert [s.phase for s in seen] == [GamePhase.BIDDING, GamePhase.SCORING]

    # snapshots are independent of later mutations
    engine.finalize_round()
    assert seen[1].rounds[0].completed is False


def test_failing_observer_rolls_back_the_transition():
    engine = _make_engine()

    def full_disk(snapshot):
        raise OSError("disk full")

    engine.add_observer(full_disk)
    with pytest.raises(StorageError):
        engine.add_player("Calico")
    assert [p.display_name for p in engine.state.players] == ["Anne", "Bonny"]

    with pytest.raises(StorageError):
        engine.start_game()
    assert engine.phase == GamePhase.SETUP
    assert engine.state.rounds == []

    engine.remove_observer(full_disk)
    engine.start_game()
    assert engine.phase == GamePhase.BIDDING


def test_removed_observer_is_not_notified():
    engine = _make_engine()
    seen = []
    engine.add_observer(seen.append)
    engine.start_game()
    engine.remove_observer(seen.append)
    engine.submit_bids()
    assert [s.phase for s in seen] == [GamePhase.BIDDING]


def test_from_state_rehydrates_and_validates():
    engine = _started()
    engine.submit_bids()
    copy_engine = GameEngine.from_state(engine.snapshot())
    assert copy_engine.state == engine.state
    copy_engine.finalize_round()
    assert copy_engine.phase == GamePhase.REVIEW

    broken = engine.snapshot()
    broken.current_round_number = 7
    with pytest.raises(ValidationError):
        GameEngine.from_state(broken)


def test_from_state_rejects_completed_round_in_play():
    engine = _started()
    broken = engine.snapshot()
    broken.rounds[0].completed = True
    with pytest.raises(ValidationError):
        GameEngine.from_state(broken)

    # the same round in review is fine
    broken.phase = GamePhase.REVIEW
    assert GameEngine.from_state(broken).phase == GamePhase.REVIEW


def test_from_state_rejects_round_missing_a_player():
    engine = _started()
    broken = engine.snapshot()
    del broken.rounds[0].player_data[_ids(engine)[1]]
    with pytest.raises(ValidationError):
        GameEngine.from_state(broken)
